"""
cropchain_services.resource_scheduler -- Driver and vehicle allocation.

Responsibility:
    Binds a crop batch, a driver and a vehicle into a transport task for a
    calendar date, and gives the driver and vehicle back once their last
    committed task finishes.

Architecture position:
    Services layer.  Composes ResourceService, TransportTaskService and the
    CropBatchStateMachine over one caller-owned session.

Invariants enforced:
    - A driver or vehicle holds at most one committed (SCHEDULED, IN_TRANSIT
      or DELAYED) task per scheduled_date.
      Checked by query here and backed by partial unique indexes, so a
      concurrent insert that slips past the query surfaces as
      SchedulingConflictError.
    - Scheduling is all-or-nothing: the task insert, the batch move to
      SHIPPED, both resource status flips and the audit record commit
      together or not at all.
    - A resource returns to AVAILABLE only when it holds no other committed
      task.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy.orm import Session

from cropchain_kernel.domain.clock import Clock, SystemClock
from cropchain_kernel.domain.events import (
    DomainEventBuffer,
    DriverAssigned,
    TransportScheduled,
)
from cropchain_kernel.domain.roles import Actor
from cropchain_kernel.domain.statuses import (
    CropBatchStatus,
    TransportTaskStatus,
    status_value,
)
from cropchain_kernel.exceptions import (
    InvalidStateError,
    MissingPrerequisiteError,
    SchedulingConflictError,
    TaskOwnershipError,
    ValidationError,
)
from cropchain_kernel.logging_config import get_logger
from cropchain_kernel.models.resources import Driver, Vehicle
from cropchain_kernel.models.transport import TransportTask
from cropchain_kernel.services.resource_service import ResourceService
from cropchain_kernel.services.transport_service import TransportTaskService
from cropchain_services import role_gate
from cropchain_services.crop_workflow import CropBatchStateMachine

logger = get_logger("services.resource_scheduler")


def normalize_scheduled_date(value: date | datetime | str) -> date:
    """Conflicts are per calendar date; times of day are dropped."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError(f"Invalid scheduled date: {value!r}")


class ResourceScheduler:
    """
    Books a driver and vehicle for a crop batch on one calendar date.

    Contract:
        Shares the state machine, event buffer and auditor of the session it
        is given.  Raises SchedulingConflictError when either resource
        already holds a committed task on the date.  Never commits.

    Usage:
        scheduler = ResourceScheduler(session, clock, events)
        task = scheduler.schedule_transport(
            batch_id, driver_id, vehicle_id, date(2025, 3, 1),
            "Farm gate", "Dock 2", actor,
        )
        # caller commits, then dispatches events.drain()
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        events: DomainEventBuffer | None = None,
        machine: CropBatchStateMachine | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.machine = machine or CropBatchStateMachine(session, self.clock, events)
        self.events = self.machine.events
        self.resources = ResourceService(session, self.clock)
        self.tasks = TransportTaskService(session, self.clock)
        self.auditor = self.machine.auditor

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    def _load_resources(
        self,
        driver_id: UUID,
        vehicle_id: UUID,
        scheduled_date: date,
        exclude_task_id: UUID | None = None,
    ) -> tuple[Driver, Vehicle]:
        """
        Lock and check the pair: existence, then availability, then date.

        Raises:
            DriverNotFoundError / VehicleNotFoundError
            ResourceUnavailableError: out of service.
            SchedulingConflictError: already booked on scheduled_date.
        """
        driver = self.resources.get_driver(driver_id, lock=True)
        vehicle = self.resources.get_vehicle(vehicle_id, lock=True)
        self.resources.ensure_driver_schedulable(driver)
        self.resources.ensure_vehicle_schedulable(vehicle)

        clash = self.resources.conflicting_task(
            scheduled_date, driver_id=driver.id, exclude_task_id=exclude_task_id
        )
        if clash is not None:
            logger.info(
                "scheduling_conflict",
                extra={
                    "resource_type": "Driver",
                    "resource_id": str(driver.id),
                    "scheduled_date": scheduled_date.isoformat(),
                },
            )
            raise SchedulingConflictError("Driver", driver.id, scheduled_date, clash.id)

        clash = self.resources.conflicting_task(
            scheduled_date, vehicle_id=vehicle.id, exclude_task_id=exclude_task_id
        )
        if clash is not None:
            logger.info(
                "scheduling_conflict",
                extra={
                    "resource_type": "Vehicle",
                    "resource_id": str(vehicle.id),
                    "scheduled_date": scheduled_date.isoformat(),
                },
            )
            raise SchedulingConflictError("Vehicle", vehicle.id, scheduled_date, clash.id)

        return driver, vehicle

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def schedule_transport(
        self,
        batch_id: UUID,
        driver_id: UUID,
        vehicle_id: UUID,
        scheduled_date: date | datetime | str,
        pickup_location: str,
        delivery_location: str,
        actor: Actor,
        notes: str | None = None,
    ) -> TransportTask:
        """
        Create a SCHEDULED task and ship the batch.

        Preconditions (checked in this order): role, batch exists, batch
        eligible, no active task, destination warehouse set, driver and
        vehicle exist, both in service, neither booked on the date.
        """
        role_gate.check_role(actor, role_gate.SCHEDULE_TRANSPORT)
        when = normalize_scheduled_date(scheduled_date)
        if not (pickup_location or "").strip() or not (delivery_location or "").strip():
            raise ValidationError("pickup_location and delivery_location are required")

        batch = self.machine.batches.get(batch_id, lock=True)
        self.machine.ensure_schedulable(batch)
        if batch.warehouse_id is None:
            raise MissingPrerequisiteError(
                batch.id,
                CropBatchStatus.SHIPPED.value,
                "has_destination_warehouse",
                f"Crop batch {batch.batch_code} has no destination warehouse; "
                f"procurement must request transport first",
            )

        driver, vehicle = self._load_resources(driver_id, vehicle_id, when)

        origin = batch.current_status
        task = self.tasks.create_task(
            crop_batch_id=batch.id,
            coordinator_id=actor.user_id,
            scheduled_date=when,
            pickup_location=pickup_location.strip(),
            delivery_location=delivery_location.strip(),
            origin_batch_status=origin.value,
            driver_id=driver.id,
            vehicle_id=vehicle.id,
            notes=notes,
        )
        self.machine.apply(
            batch,
            CropBatchStatus.SHIPPED,
            actor,
            action=role_gate.SCHEDULE_TRANSPORT,
            audit_details={"task_id": task.id},
        )
        self.resources.mark_driver_on_duty(driver, actor.user_id)
        self.resources.mark_vehicle_in_use(vehicle, actor.user_id)

        self.auditor.record_transport_scheduled(
            task.id, actor.user_id, batch.id, driver.id, vehicle.id, when, origin.value
        )
        self.events.record(
            TransportScheduled(
                task_id=task.id,
                batch_id=batch.id,
                batch_code=batch.batch_code,
                warehouse_id=batch.warehouse_id,
                coordinator_id=actor.user_id,
                driver_user_id=driver.profile_id,
                scheduled_date=when,
                pickup_location=task.pickup_location,
                delivery_location=task.delivery_location,
                actor_id=actor.user_id,
            )
        )
        logger.info(
            "transport_scheduled",
            extra={
                "task_id": str(task.id),
                "batch_id": str(batch.id),
                "driver_id": str(driver.id),
                "vehicle_id": str(vehicle.id),
                "scheduled_date": when.isoformat(),
            },
        )
        return task

    def assign_driver_to_task(
        self,
        task_id: UUID,
        driver_id: UUID,
        vehicle_id: UUID,
        actor: Actor,
        scheduled_date: date | datetime | str | None = None,
        notes: str | None = None,
    ) -> TransportTask:
        """Fill in the driver and vehicle on the coordinator's SCHEDULED task."""
        role_gate.check_role(actor, role_gate.ASSIGN_DRIVER)
        task = self.tasks.get(task_id, lock=True)
        if task.coordinator_id != actor.user_id:
            raise TaskOwnershipError(actor.role.value, role_gate.ASSIGN_DRIVER, task.id)
        if task.current_status != TransportTaskStatus.SCHEDULED:
            raise InvalidStateError(
                "TransportTask",
                task.id,
                status_value(task.status),
                f"Transport task {task.id} is {status_value(task.status)}; "
                f"only SCHEDULED tasks take a driver",
            )
        if task.driver_id is not None or task.vehicle_id is not None:
            raise InvalidStateError(
                "TransportTask",
                task.id,
                status_value(task.status),
                f"Transport task {task.id} already has a driver and vehicle",
            )

        when = (
            normalize_scheduled_date(scheduled_date)
            if scheduled_date is not None
            else task.scheduled_date
        )
        driver, vehicle = self._load_resources(driver_id, vehicle_id, when, exclude_task_id=task.id)

        self.tasks.assign_resources(task, driver.id, vehicle.id, when, actor.user_id, notes=notes)
        self.resources.mark_driver_on_duty(driver, actor.user_id)
        self.resources.mark_vehicle_in_use(vehicle, actor.user_id)

        self.auditor.record_driver_assigned(task.id, actor.user_id, driver.id, vehicle.id, when)
        self.events.record(
            DriverAssigned(
                task_id=task.id,
                batch_id=task.crop_batch_id,
                batch_code=task.crop_batch.batch_code,
                driver_user_id=driver.profile_id,
                scheduled_date=when,
                actor_id=actor.user_id,
            )
        )
        logger.info(
            "driver_assigned",
            extra={
                "task_id": str(task.id),
                "driver_id": str(driver.id),
                "vehicle_id": str(vehicle.id),
                "scheduled_date": when.isoformat(),
            },
        )
        return task

    def release_resources(self, task: TransportTask, actor_id: UUID) -> tuple[bool, bool]:
        """
        Release the task's driver and vehicle if this was their last
        committed task.  Returns (driver_released, vehicle_released).
        """
        driver_released = vehicle_released = False
        if task.driver_id is not None:
            driver_released = self.resources.release_driver(task.driver_id, actor_id, task.id)
        if task.vehicle_id is not None:
            vehicle_released = self.resources.release_vehicle(task.vehicle_id, actor_id, task.id)
        return driver_released, vehicle_released
