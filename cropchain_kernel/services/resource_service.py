"""
ResourceService -- driver and vehicle availability bookkeeping.

Responsibility:
    Loads drivers and vehicles (row-locked when the caller is about to
    commit them), finds date conflicts, and moves their status between the
    available and busy variants.

Invariants enforced:
    - A resource is released to AVAILABLE only after re-counting its
      committed tasks; it is never dropped while still committed elsewhere.
    - Status writes are conditional on the observed prior status.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select, update

from cropchain_kernel.domain.statuses import (
    COMMITTED_TASK_STATUSES,
    DRIVER_OUT_OF_SERVICE,
    VEHICLE_OUT_OF_SERVICE,
    DriverStatus,
    VehicleStatus,
    status_value,
)
from cropchain_kernel.exceptions import (
    DriverNotFoundError,
    ResourceUnavailableError,
    VehicleNotFoundError,
)
from cropchain_kernel.logging_config import get_logger
from cropchain_kernel.models.resources import Driver, Vehicle
from cropchain_kernel.models.transport import TransportTask
from cropchain_kernel.services.base import BaseService

logger = get_logger("services.resources")


class ResourceService(BaseService):

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_driver(self, driver_id: UUID, lock: bool = False) -> Driver:
        stmt = select(Driver).where(Driver.id == driver_id)
        if lock:
            stmt = stmt.with_for_update(of=Driver)
        driver = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).unique().scalar_one_or_none()
        if driver is None:
            raise DriverNotFoundError(driver_id)
        return driver

    def get_vehicle(self, vehicle_id: UUID, lock: bool = False) -> Vehicle:
        stmt = select(Vehicle).where(Vehicle.id == vehicle_id)
        if lock:
            stmt = stmt.with_for_update(of=Vehicle)
        vehicle = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if vehicle is None:
            raise VehicleNotFoundError(vehicle_id)
        return vehicle

    def driver_for_profile(self, profile_id: UUID) -> Driver | None:
        return self.session.execute(
            select(Driver).where(Driver.profile_id == profile_id)
        ).unique().scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------------

    def ensure_driver_schedulable(self, driver: Driver) -> None:
        """
        Raise ResourceUnavailableError unless the driver can take work.

        ON_DUTY does not disqualify: it means committed on some date, and
        conflicts are detected per date.
        """
        status = DriverStatus(driver.status)
        if not driver.is_active or status in DRIVER_OUT_OF_SERVICE:
            raise ResourceUnavailableError("Driver", driver.id, status.value)

    def ensure_vehicle_schedulable(self, vehicle: Vehicle) -> None:
        status = VehicleStatus(vehicle.status)
        if not vehicle.is_active or status in VEHICLE_OUT_OF_SERVICE:
            raise ResourceUnavailableError("Vehicle", vehicle.id, status.value)

    def conflicting_task(
        self,
        scheduled_date: date,
        driver_id: UUID | None = None,
        vehicle_id: UUID | None = None,
        exclude_task_id: UUID | None = None,
    ) -> TransportTask | None:
        """A committed task already holding this driver (or vehicle) on scheduled_date."""
        stmt = select(TransportTask).where(
            TransportTask.scheduled_date == scheduled_date,
            TransportTask.status.in_([s.value for s in COMMITTED_TASK_STATUSES]),
        )
        if driver_id is not None:
            stmt = stmt.where(TransportTask.driver_id == driver_id)
        if vehicle_id is not None:
            stmt = stmt.where(TransportTask.vehicle_id == vehicle_id)
        if exclude_task_id is not None:
            stmt = stmt.where(TransportTask.id != exclude_task_id)
        return self.session.execute(stmt.limit(1)).unique().scalar_one_or_none()

    def committed_task_count(
        self,
        driver_id: UUID | None = None,
        vehicle_id: UUID | None = None,
        exclude_task_id: UUID | None = None,
    ) -> int:
        stmt = select(func.count(TransportTask.id)).where(
            TransportTask.status.in_([s.value for s in COMMITTED_TASK_STATUSES])
        )
        if driver_id is not None:
            stmt = stmt.where(TransportTask.driver_id == driver_id)
        if vehicle_id is not None:
            stmt = stmt.where(TransportTask.vehicle_id == vehicle_id)
        if exclude_task_id is not None:
            stmt = stmt.where(TransportTask.id != exclude_task_id)
        return self.session.execute(stmt).scalar_one()

    # -------------------------------------------------------------------------
    # Status writes
    # -------------------------------------------------------------------------

    def _set_status(self, model, resource, observed: str, new: str, actor_id: UUID) -> bool:
        if observed == new:
            return False
        result = self.session.execute(
            update(model)
            .where(model.id == resource.id, model.status == observed)
            .values(status=new, updated_by_id=actor_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.refresh(resource)
            raise ResourceUnavailableError(model.__name__, resource.id, status_value(resource.status))
        self.session.refresh(resource)
        logger.info(
            "resource_status_changed",
            extra={
                "resource_type": model.__name__,
                "resource_id": str(resource.id),
                "previous_status": observed,
                "new_status": new,
            },
        )
        return True

    def mark_driver_on_duty(self, driver: Driver, actor_id: UUID) -> bool:
        return self._set_status(
            Driver, driver, status_value(driver.status), DriverStatus.ON_DUTY.value, actor_id
        )

    def mark_vehicle_in_use(self, vehicle: Vehicle, actor_id: UUID) -> bool:
        return self._set_status(
            Vehicle, vehicle, status_value(vehicle.status), VehicleStatus.IN_USE.value, actor_id
        )

    def release_driver(self, driver_id: UUID, actor_id: UUID, finished_task_id: UUID) -> bool:
        """
        Return the driver to AVAILABLE if finished_task_id was its last
        committed task.  Returns True when the status changed.
        """
        driver = self.get_driver(driver_id, lock=True)
        remaining = self.committed_task_count(driver_id=driver.id, exclude_task_id=finished_task_id)
        if remaining or DriverStatus(driver.status) != DriverStatus.ON_DUTY:
            logger.info(
                "resource_release_skipped",
                extra={
                    "resource_type": "Driver",
                    "resource_id": str(driver.id),
                    "status": status_value(driver.status),
                    "remaining_tasks": remaining,
                },
            )
            return False
        return self._set_status(
            Driver, driver, DriverStatus.ON_DUTY.value, DriverStatus.AVAILABLE.value, actor_id
        )

    def release_vehicle(self, vehicle_id: UUID, actor_id: UUID, finished_task_id: UUID) -> bool:
        vehicle = self.get_vehicle(vehicle_id, lock=True)
        remaining = self.committed_task_count(vehicle_id=vehicle.id, exclude_task_id=finished_task_id)
        if remaining or VehicleStatus(vehicle.status) != VehicleStatus.IN_USE:
            logger.info(
                "resource_release_skipped",
                extra={
                    "resource_type": "Vehicle",
                    "resource_id": str(vehicle.id),
                    "status": status_value(vehicle.status),
                    "remaining_tasks": remaining,
                },
            )
            return False
        return self._set_status(
            Vehicle, vehicle, VehicleStatus.IN_USE.value, VehicleStatus.AVAILABLE.value, actor_id
        )
