"""
Closed status vocabularies for every stateful entity.

Each enum is a ``str`` enum so members compare equal to the strings stored
in the database.  Use ``CropBatchStatus(value)`` to coerce a loaded column.
"""

from enum import Enum


class CropBatchStatus(str, Enum):
    """Lifecycle of a crop batch, in supply-chain order."""

    PLANTED = "PLANTED"
    GROWING = "GROWING"
    READY_FOR_HARVEST = "READY_FOR_HARVEST"
    HARVESTED = "HARVESTED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    PROCESSED = "PROCESSED"
    READY_FOR_PACKAGING = "READY_FOR_PACKAGING"
    PACKAGING = "PACKAGING"
    PACKAGED = "PACKAGED"
    SHIPPED = "SHIPPED"
    RECEIVED = "RECEIVED"
    STORED = "STORED"


class TransportTaskStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    DELAYED = "DELAYED"


class DriverStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    ON_DUTY = "ON_DUTY"
    OFF_DUTY = "OFF_DUTY"
    SICK_LEAVE = "SICK_LEAVE"


class VehicleStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    IN_USE = "IN_USE"
    MAINTENANCE = "MAINTENANCE"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"


class VehicleType(str, Enum):
    TRUCK = "TRUCK"
    VAN = "VAN"
    PICKUP = "PICKUP"
    REFRIGERATED_TRUCK = "REFRIGERATED_TRUCK"
    CONTAINER_TRUCK = "CONTAINER_TRUCK"


class IssueType(str, Enum):
    VEHICLE_BREAKDOWN = "VEHICLE_BREAKDOWN"
    TRAFFIC_DELAY = "TRAFFIC_DELAY"
    WEATHER_DELAY = "WEATHER_DELAY"
    DAMAGED_GOODS = "DAMAGED_GOODS"
    ROUTE_CHANGE = "ROUTE_CHANGE"
    OTHER = "OTHER"


class IssueStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    ESCALATED = "ESCALATED"


class NotificationType(str, Enum):
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_SCHEDULED = "TASK_SCHEDULED"
    TRANSPORT_REQUESTED = "TRANSPORT_REQUESTED"
    PICKUP_READY = "PICKUP_READY"
    SHIPMENT_ARRIVING = "SHIPMENT_ARRIVING"
    DELIVERY_CONFIRMED = "DELIVERY_CONFIRMED"
    BATCH_RECEIVED = "BATCH_RECEIVED"
    ISSUE_REPORTED = "ISSUE_REPORTED"
    HARVEST_READY = "HARVEST_READY"
    BATCH_PROCESSED = "BATCH_PROCESSED"
    GENERAL = "GENERAL"


class NotificationCategory(str, Enum):
    CROP_MANAGEMENT = "CROP_MANAGEMENT"
    PROCUREMENT = "PROCUREMENT"
    TRANSPORT = "TRANSPORT"
    WAREHOUSE = "WAREHOUSE"


class NotificationPriority(str, Enum):
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


# Tasks holding their batch: at most one per batch, one per driver/vehicle per date.
ACTIVE_TASK_STATUSES: frozenset[TransportTaskStatus] = frozenset(
    {TransportTaskStatus.SCHEDULED, TransportTaskStatus.IN_TRANSIT}
)

# Tasks still holding their driver and vehicle.
COMMITTED_TASK_STATUSES: frozenset[TransportTaskStatus] = ACTIVE_TASK_STATUSES | {
    TransportTaskStatus.DELAYED
}

TERMINAL_TASK_STATUSES: frozenset[TransportTaskStatus] = frozenset(
    {TransportTaskStatus.DELIVERED, TransportTaskStatus.CANCELLED}
)

DRIVER_OUT_OF_SERVICE: frozenset[DriverStatus] = frozenset(
    {DriverStatus.OFF_DUTY, DriverStatus.SICK_LEAVE}
)

VEHICLE_OUT_OF_SERVICE: frozenset[VehicleStatus] = frozenset(
    {VehicleStatus.MAINTENANCE, VehicleStatus.OUT_OF_SERVICE}
)


def status_value(status) -> str:
    """Plain string for a status that may be an enum member or a loaded column value."""
    return getattr(status, "value", status)
