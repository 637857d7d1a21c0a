"""
Typed exception hierarchy for the crop chain kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every command either applies completely or leaves the store untouched, and
the caller needs to know which rule stopped it: a driver picking the wrong
batch is a different conversation from a coordinator double-booking a truck.
So:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (batch ids, statuses, roles)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CropChainError (base)
    |
    +-- UnauthorizedError
    |   +-- CustodyHandoffError
    |   +-- TaskOwnershipError
    |   +-- InactiveActorError
    |
    +-- ValidationError
    |   +-- InvalidTransitionError
    |   |   +-- RoleReservedStatusError
    |   |   +-- StaleStatusError
    |   +-- MissingPrerequisiteError
    |   +-- InvalidStateError
    |   |   +-- BatchNotEligibleError
    |   |   +-- ActiveTaskExistsError
    |   +-- InvalidIssueUpdateError
    |
    +-- NotFoundError
    |   +-- CropBatchNotFoundError, TransportTaskNotFoundError,
    |       DriverNotFoundError, VehicleNotFoundError, WarehouseNotFoundError,
    |       ProfileNotFoundError, FarmNotFoundError,
    |       TransportIssueNotFoundError, NotificationNotFoundError
    |
    +-- ResourceContentionError
    |   +-- ResourceUnavailableError
    |   +-- SchedulingConflictError
    |
    +-- CodeMismatchError
    +-- ImmutabilityViolationError
    +-- AuditChainBrokenError
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                   | When Raised
-------------|------------------------|------------------------------------------
Access       | UNAUTHORIZED           | Role may not perform the action at all
             | CUSTODY_HANDOFF        | Field stage writing after hand-off
             | TASK_OWNERSHIP         | Task belongs to another driver/coordinator
             | INACTIVE_ACTOR         | Profile is deactivated
-------------|------------------------|------------------------------------------
Validation   | INVALID_TRANSITION     | Target is not a successor of current status
             | ROLE_RESERVED_STATUS   | Target status belongs to another role
             | STALE_STATUS           | Status changed under us (CAS miss)
             | MISSING_PREREQUISITE   | Required attribute not set yet
             | INVALID_STATE          | Entity not in a state allowing the action
             | BATCH_NOT_ELIGIBLE     | Batch not ready for transport
             | ACTIVE_TASK_EXISTS     | Batch already has an active task
             | INVALID_ISSUE_UPDATE   | Issue update breaks issue rules
-------------|------------------------|------------------------------------------
Lookup       | *_NOT_FOUND            | Referenced entity absent
-------------|------------------------|------------------------------------------
Contention   | RESOURCE_UNAVAILABLE   | Driver/vehicle out of service
             | SCHEDULING_CONFLICT    | Driver/vehicle already booked that date
-------------|------------------------|------------------------------------------
Custody      | CODE_MISMATCH          | Scanned code is not the batch's code

None of these are retried automatically. A failed command rolls back its
whole transaction.
"""

from typing import Any


class CropChainError(Exception):
    """
    Base exception for all crop chain errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CROP_CHAIN_ERROR"


# Access


class UnauthorizedError(CropChainError):
    """Role or ownership check failed."""

    code: str = "UNAUTHORIZED"

    def __init__(self, role: str, action: str, reason: str | None = None):
        self.role = role
        self.action = action
        self.reason = reason
        message = f"Role '{role}' is not permitted to {action}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class CustodyHandoffError(UnauthorizedError):
    """The batch has passed beyond the role's custody."""

    code: str = "CUSTODY_HANDOFF"

    def __init__(self, role: str, batch_id: Any, status: str):
        self.batch_id = batch_id
        self.status = status
        super().__init__(
            role,
            "update_crop_status",
            f"batch {batch_id} is {status} and no longer in this role's custody",
        )


class TaskOwnershipError(UnauthorizedError):
    """Transport task is not assigned to the calling actor."""

    code: str = "TASK_OWNERSHIP"

    def __init__(self, role: str, action: str, task_id: Any):
        self.task_id = task_id
        super().__init__(role, action, f"transport task {task_id} is not assigned to you")


class InactiveActorError(UnauthorizedError):
    """Actor profile is deactivated."""

    code: str = "INACTIVE_ACTOR"

    def __init__(self, role: str, user_id: Any):
        self.user_id = user_id
        super().__init__(role, "act", f"profile {user_id} is inactive")


# Business-rule validation


class ValidationError(CropChainError):
    """Base exception for user-correctable business-rule violations."""

    code: str = "VALIDATION_ERROR"


class InvalidTransitionError(ValidationError):
    """Requested status is not a legal successor of the current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity_type: str, entity_id: Any, from_status: str, to_status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot move {entity_type} {entity_id} from {from_status} to {to_status}"
        )


class RoleReservedStatusError(InvalidTransitionError):
    """Requested status is reserved for a different role."""

    code: str = "ROLE_RESERVED_STATUS"

    def __init__(self, role: str, batch_id: Any, from_status: str, to_status: str):
        self.role = role
        super().__init__("CropBatch", batch_id, from_status, to_status)
        self.args = (
            f"Status {to_status} is reserved for another role; "
            f"'{role}' cannot set it on batch {batch_id}",
        )


class StaleStatusError(InvalidTransitionError):
    """Status changed between read and conditional update."""

    code: str = "STALE_STATUS"

    def __init__(self, entity_type: str, entity_id: Any, expected_status: str, to_status: str):
        super().__init__(entity_type, entity_id, expected_status, to_status)
        self.args = (
            f"{entity_type} {entity_id} is no longer {expected_status}; "
            f"it was modified concurrently",
        )


class MissingPrerequisiteError(ValidationError):
    """Transition requires an attribute or record that is not present yet."""

    code: str = "MISSING_PREREQUISITE"

    def __init__(self, entity_id: Any, to_status: str, prerequisite: str, detail: str):
        self.entity_id = entity_id
        self.to_status = to_status
        self.prerequisite = prerequisite
        super().__init__(detail)


class InvalidStateError(ValidationError):
    """Entity is not in a state that allows the requested action."""

    code: str = "INVALID_STATE"

    def __init__(self, entity_type: str, entity_id: Any, status: str, detail: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.status = status
        super().__init__(detail)


class BatchNotEligibleError(InvalidStateError):
    """Crop batch is not in a status ready for transport."""

    code: str = "BATCH_NOT_ELIGIBLE"

    def __init__(self, batch_id: Any, status: str, eligible: tuple[str, ...]):
        self.eligible = eligible
        super().__init__(
            "CropBatch",
            batch_id,
            status,
            f"Crop batch {batch_id} is {status}; transport requires one of "
            f"{', '.join(eligible)}",
        )


class ActiveTaskExistsError(InvalidStateError):
    """Crop batch already has an active transport task."""

    code: str = "ACTIVE_TASK_EXISTS"

    def __init__(self, batch_id: Any, task_id: Any, status: str):
        self.task_id = task_id
        super().__init__(
            "CropBatch",
            batch_id,
            status,
            f"Crop batch {batch_id} already has active transport task {task_id}",
        )


class InvalidIssueUpdateError(ValidationError):
    """Transport issue update violates issue rules."""

    code: str = "INVALID_ISSUE_UPDATE"

    def __init__(self, issue_id: Any, reason: str):
        self.issue_id = issue_id
        self.reason = reason
        super().__init__(f"Cannot update transport issue {issue_id}: {reason}")


# Lookup


class NotFoundError(CropChainError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: Any):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class CropBatchNotFoundError(NotFoundError):
    code: str = "CROP_BATCH_NOT_FOUND"
    entity_type = "Crop batch"


class TransportTaskNotFoundError(NotFoundError):
    code: str = "TRANSPORT_TASK_NOT_FOUND"
    entity_type = "Transport task"


class DriverNotFoundError(NotFoundError):
    code: str = "DRIVER_NOT_FOUND"
    entity_type = "Driver"


class VehicleNotFoundError(NotFoundError):
    code: str = "VEHICLE_NOT_FOUND"
    entity_type = "Vehicle"


class WarehouseNotFoundError(NotFoundError):
    code: str = "WAREHOUSE_NOT_FOUND"
    entity_type = "Warehouse"


class ProfileNotFoundError(NotFoundError):
    code: str = "PROFILE_NOT_FOUND"
    entity_type = "Profile"


class FarmNotFoundError(NotFoundError):
    code: str = "FARM_NOT_FOUND"
    entity_type = "Farm"


class TransportIssueNotFoundError(NotFoundError):
    code: str = "TRANSPORT_ISSUE_NOT_FOUND"
    entity_type = "Transport issue"


class NotificationNotFoundError(NotFoundError):
    code: str = "NOTIFICATION_NOT_FOUND"
    entity_type = "Notification"


# Resource contention


class ResourceContentionError(CropChainError):
    """Base exception for driver/vehicle contention."""

    code: str = "RESOURCE_CONTENTION"


class ResourceUnavailableError(ResourceContentionError):
    """Driver or vehicle cannot take transport work."""

    code: str = "RESOURCE_UNAVAILABLE"

    def __init__(self, resource_type: str, resource_id: Any, status: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.status = status
        super().__init__(f"{resource_type} {resource_id} is not available (status {status})")


class SchedulingConflictError(ResourceContentionError):
    """Driver or vehicle already has an active task on the date."""

    code: str = "SCHEDULING_CONFLICT"

    def __init__(self, resource_type: str, resource_id: Any, scheduled_date: Any, task_id: Any = None):
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.scheduled_date = scheduled_date
        self.task_id = task_id
        super().__init__(
            f"{resource_type} {resource_id} already has an active transport task "
            f"on {scheduled_date}"
        )


# Custody


class CodeMismatchError(CropChainError):
    """Scanned code does not match the batch's tracking code."""

    code: str = "CODE_MISMATCH"

    def __init__(self, batch_id: Any, task_id: Any = None):
        self.batch_id = batch_id
        self.task_id = task_id
        super().__init__(
            f"Scanned code does not match crop batch {batch_id}. "
            f"Please verify you have the correct batch."
        )


# Persistence integrity


class ImmutabilityViolationError(CropChainError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Immutability violation on {entity_type} {entity_id}: {reason}")


class AuditChainBrokenError(CropChainError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


class ConfigurationError(CropChainError):
    """Configuration file is missing or malformed."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration in {source}: {reason}")
