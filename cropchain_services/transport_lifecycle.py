"""
cropchain_services.transport_lifecycle -- Transport task progression.

Responsibility:
    Pickup and delivery confirmation by the assigned driver, coordinator
    status updates, and issue reporting and resolution.

Architecture position:
    Services layer.  Uses the ResourceScheduler for resource release and the
    CropBatchStateMachine when a cancelled task hands its batch back.

Invariants enforced:
    - Custody: pickup and delivery need the assigned driver and a scan that
      names the batch.
    - Delivery never changes the crop batch status; the warehouse confirms
      receipt separately.
    - All task status writes are compare-and-swap on the prior status.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from cropchain_kernel.domain.clock import Clock
from cropchain_kernel.domain.events import (
    DeliveryConfirmed,
    DomainEventBuffer,
    IssueReported,
    PickupConfirmed,
)
from cropchain_kernel.domain.lifecycles import TRANSPORT_TASK_WORKFLOW
from cropchain_kernel.domain.roles import Actor, Role
from cropchain_kernel.domain.statuses import (
    ACTIVE_TASK_STATUSES,
    CropBatchStatus,
    IssueStatus,
    IssueType,
    TransportTaskStatus,
    status_value,
)
from cropchain_kernel.domain.tracking_code import matches_batch
from cropchain_kernel.exceptions import (
    CodeMismatchError,
    InvalidIssueUpdateError,
    InvalidStateError,
    InvalidTransitionError,
    MissingPrerequisiteError,
    TaskOwnershipError,
    ValidationError,
)
from cropchain_kernel.logging_config import get_logger
from cropchain_kernel.models.audit_event import AuditAction
from cropchain_kernel.models.resources import Driver
from cropchain_kernel.models.transport import TransportIssue, TransportTask
from cropchain_kernel.services.transport_service import append_note
from cropchain_services import role_gate
from cropchain_services.crop_workflow import CropBatchStateMachine
from cropchain_services.resource_scheduler import ResourceScheduler

logger = get_logger("services.transport_lifecycle")


class TransportLifecycle:
    """
    Moves a transport task from pickup to delivery and records its issues.

    Contract:
        Custody scans must name the task's batch.  Only the assigned driver
        confirms pickup and delivery; only the owning coordinator changes
        status directly.  Resources are released through the scheduler when
        a task ends.  Never commits.

    Usage:
        lifecycle = TransportLifecycle(session, clock, events)
        lifecycle.confirm_pickup(task_id, "CB-2025-001", driver_actor)
        lifecycle.confirm_delivery(task_id, "CB-2025-001", driver_actor)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        events: DomainEventBuffer | None = None,
        scheduler: ResourceScheduler | None = None,
    ):
        self.session = session
        self.scheduler = scheduler or ResourceScheduler(session, clock, events)
        self.clock = self.scheduler.clock
        self.machine = self.scheduler.machine
        self.events = self.scheduler.events
        self.tasks = self.scheduler.tasks
        self.resources = self.scheduler.resources
        self.auditor = self.scheduler.auditor

    # -------------------------------------------------------------------------
    # Ownership
    # -------------------------------------------------------------------------

    def _assigned_driver(self, task: TransportTask, actor: Actor, action: str) -> Driver:
        driver = self.resources.driver_for_profile(actor.user_id)
        if driver is None or task.driver_id is None or task.driver_id != driver.id:
            logger.info(
                "task_ownership_denied",
                extra={"task_id": str(task.id), "action": action},
            )
            raise TaskOwnershipError(actor.role.value, action, task.id)
        return driver

    def _owned_by_coordinator(self, task: TransportTask, actor: Actor, action: str) -> None:
        if task.coordinator_id != actor.user_id:
            logger.info(
                "task_ownership_denied",
                extra={"task_id": str(task.id), "action": action},
            )
            raise TaskOwnershipError(actor.role.value, action, task.id)

    def _require_status(self, task: TransportTask, expected: TransportTaskStatus, action: str) -> None:
        if task.current_status != expected:
            raise InvalidStateError(
                "TransportTask",
                task.id,
                status_value(task.status),
                f"Cannot {action}: transport task is {status_value(task.status)}, "
                f"expected {expected.value}",
            )

    def _check_scan(self, task: TransportTask, scanned_code: str) -> None:
        batch = task.crop_batch
        if not matches_batch(scanned_code, batch.batch_code, batch.qr_code):
            logger.warning(
                "scan_code_mismatch",
                extra={"task_id": str(task.id), "batch_id": str(batch.id)},
            )
            raise CodeMismatchError(batch.id, task.id)

    # -------------------------------------------------------------------------
    # Driver custody
    # -------------------------------------------------------------------------

    def confirm_pickup(
        self,
        task_id: UUID,
        scanned_code: str,
        actor: Actor,
        notes: str | None = None,
    ) -> TransportTask:
        role_gate.check_role(actor, role_gate.CONFIRM_PICKUP)
        task = self.tasks.get(task_id, lock=True)
        driver = self._assigned_driver(task, actor, role_gate.CONFIRM_PICKUP)
        self._require_status(task, TransportTaskStatus.SCHEDULED, "confirm pickup")
        self._check_scan(task, scanned_code)

        self.tasks.compare_and_set_status(
            task,
            TransportTaskStatus.SCHEDULED,
            TransportTaskStatus.IN_TRANSIT,
            actor.user_id,
            actual_pickup_date=self.clock.now(),
            notes=append_note(task.notes, notes),
        )
        self.resources.mark_driver_on_duty(driver, actor.user_id)

        self.auditor.record_task_status_change(
            task.id,
            actor.user_id,
            TransportTaskStatus.SCHEDULED.value,
            TransportTaskStatus.IN_TRANSIT.value,
            action=AuditAction.PICKUP_CONFIRMED,
            batch_id=task.crop_batch_id,
        )
        batch = task.crop_batch
        self.events.record(
            PickupConfirmed(
                task_id=task.id,
                batch_id=batch.id,
                batch_code=batch.batch_code,
                coordinator_id=task.coordinator_id,
                warehouse_id=batch.warehouse_id,
                driver_name=actor.full_name,
                actor_id=actor.user_id,
            )
        )
        logger.info(
            "pickup_confirmed",
            extra={"task_id": str(task.id), "batch_id": str(batch.id)},
        )
        return task

    def confirm_delivery(
        self,
        task_id: UUID,
        scanned_code: str,
        actor: Actor,
        notes: str | None = None,
    ) -> TransportTask:
        """IN_TRANSIT -> DELIVERED.  The batch stays SHIPPED until receipt."""
        role_gate.check_role(actor, role_gate.CONFIRM_DELIVERY)
        task = self.tasks.get(task_id, lock=True)
        self._assigned_driver(task, actor, role_gate.CONFIRM_DELIVERY)
        self._require_status(task, TransportTaskStatus.IN_TRANSIT, "confirm delivery")
        self._check_scan(task, scanned_code)

        self.tasks.compare_and_set_status(
            task,
            TransportTaskStatus.IN_TRANSIT,
            TransportTaskStatus.DELIVERED,
            actor.user_id,
            actual_delivery_date=self.clock.now(),
            notes=append_note(task.notes, notes),
        )
        self.scheduler.release_resources(task, actor.user_id)

        self.auditor.record_task_status_change(
            task.id,
            actor.user_id,
            TransportTaskStatus.IN_TRANSIT.value,
            TransportTaskStatus.DELIVERED.value,
            action=AuditAction.DELIVERY_CONFIRMED,
            batch_id=task.crop_batch_id,
        )
        batch = task.crop_batch
        self.events.record(
            DeliveryConfirmed(
                task_id=task.id,
                batch_id=batch.id,
                batch_code=batch.batch_code,
                coordinator_id=task.coordinator_id,
                warehouse_id=batch.warehouse_id,
                driver_name=actor.full_name,
                actor_id=actor.user_id,
            )
        )
        logger.info(
            "delivery_confirmed",
            extra={"task_id": str(task.id), "batch_id": str(batch.id)},
        )
        return task

    # -------------------------------------------------------------------------
    # Coordinator
    # -------------------------------------------------------------------------

    def update_transport_task_status(
        self,
        task_id: UUID,
        new_status: TransportTaskStatus | str,
        actor: Actor,
        notes: str | None = None,
    ) -> TransportTask:
        """
        Table-checked status change by the owning coordinator.

        DELIVERED and CANCELLED release resources.  CANCELLED also hands a
        still-SHIPPED batch back to the status it was scheduled from.
        """
        role_gate.check_role(actor, role_gate.UPDATE_TRANSPORT_STATUS)
        task = self.tasks.get(task_id, lock=True)
        self._owned_by_coordinator(task, actor, role_gate.UPDATE_TRANSPORT_STATUS)

        current = task.current_status
        try:
            requested = TransportTaskStatus(status_value(new_status))
        except ValueError:
            raise InvalidTransitionError(
                "TransportTask", task.id, current.value, str(new_status)
            ) from None

        if TRANSPORT_TASK_WORKFLOW.find_transition(current.value, requested.value) is None:
            raise InvalidTransitionError("TransportTask", task.id, current.value, requested.value)

        moving = requested in (TransportTaskStatus.IN_TRANSIT, TransportTaskStatus.DELIVERED)
        if moving and task.driver_id is None:
            raise MissingPrerequisiteError(
                task.id,
                requested.value,
                "has_assigned_driver",
                f"Transport task {task.id} has no driver assigned",
            )

        coupled: dict[str, Any] = {"notes": append_note(task.notes, notes)}
        now = self.clock.now()
        if requested == TransportTaskStatus.IN_TRANSIT and task.actual_pickup_date is None:
            coupled["actual_pickup_date"] = now
        if requested == TransportTaskStatus.DELIVERED:
            coupled["actual_delivery_date"] = now

        self.tasks.compare_and_set_status(task, current, requested, actor.user_id, **coupled)
        self.auditor.record_task_status_change(
            task.id,
            actor.user_id,
            current.value,
            requested.value,
            notes=notes,
        )

        if requested in (TransportTaskStatus.DELIVERED, TransportTaskStatus.CANCELLED):
            self.scheduler.release_resources(task, actor.user_id)

        batch = task.crop_batch
        if requested == TransportTaskStatus.CANCELLED:
            self._return_batch(task, actor, notes)
        elif requested == TransportTaskStatus.DELIVERED:
            self.events.record(
                DeliveryConfirmed(
                    task_id=task.id,
                    batch_id=batch.id,
                    batch_code=batch.batch_code,
                    coordinator_id=task.coordinator_id,
                    warehouse_id=batch.warehouse_id,
                    actor_id=actor.user_id,
                )
            )

        logger.info(
            "transport_status_updated",
            extra={
                "task_id": str(task.id),
                "previous_status": current.value,
                "new_status": requested.value,
            },
        )
        return task

    def _return_batch(self, task: TransportTask, actor: Actor, notes: str | None) -> None:
        batch = self.machine.batches.get(task.crop_batch_id, lock=True)
        if batch.current_status != CropBatchStatus.SHIPPED:
            return
        self.machine.apply(
            batch,
            task.origin_batch_status,
            actor,
            action=role_gate.UPDATE_TRANSPORT_STATUS,
            notes=notes,
            audit_details={"task_id": task.id, "reason": "transport_cancelled"},
        )

    # -------------------------------------------------------------------------
    # Issues
    # -------------------------------------------------------------------------

    def report_issue(
        self,
        task_id: UUID,
        issue_type: IssueType | str,
        description: str,
        actor: Actor,
        location: str | None = None,
    ) -> TransportIssue:
        """
        Open an issue against the task.  A VEHICLE_BREAKDOWN on a SCHEDULED
        or IN_TRANSIT task also moves the task to DELAYED.
        """
        role_gate.check_role(actor, role_gate.REPORT_ISSUE)
        try:
            kind = IssueType(status_value(issue_type))
        except ValueError:
            raise ValidationError(f"Unknown issue type: {issue_type!r}") from None
        if not (description or "").strip():
            raise ValidationError("Issue description is required")

        task = self.tasks.get(task_id, lock=True)
        if actor.role == Role.TRANSPORT_DRIVER:
            self._assigned_driver(task, actor, role_gate.REPORT_ISSUE)
        else:
            self._owned_by_coordinator(task, actor, role_gate.REPORT_ISSUE)

        issue = self.tasks.create_issue(
            task, kind, description.strip(), actor.user_id, location=location
        )

        delayed = False
        current = task.current_status
        if kind == IssueType.VEHICLE_BREAKDOWN and current in ACTIVE_TASK_STATUSES:
            self.tasks.compare_and_set_status(
                task, current, TransportTaskStatus.DELAYED, actor.user_id
            )
            self.auditor.record_task_status_change(
                task.id,
                actor.user_id,
                current.value,
                TransportTaskStatus.DELAYED.value,
                issue_id=issue.id,
                reason=kind.value,
            )
            delayed = True

        self.auditor.record_issue_reported(issue.id, actor.user_id, task.id, kind.value, delayed)
        batch = task.crop_batch
        self.events.record(
            IssueReported(
                issue_id=issue.id,
                task_id=task.id,
                batch_id=batch.id,
                batch_code=batch.batch_code,
                coordinator_id=task.coordinator_id,
                issue_type=kind.value,
                description=issue.description,
                task_delayed=delayed,
                actor_id=actor.user_id,
            )
        )
        logger.info(
            "issue_reported",
            extra={
                "issue_id": str(issue.id),
                "task_id": str(task.id),
                "issue_type": kind.value,
                "task_delayed": delayed,
            },
        )
        return issue

    def update_issue(
        self,
        actor: Actor,
        issue_id: UUID,
        status: IssueStatus | str,
        resolution: str | None = None,
    ) -> TransportIssue:
        role_gate.check_role(actor, role_gate.UPDATE_ISSUE)
        issue = self.tasks.get_issue(issue_id)
        self._owned_by_coordinator(issue.transport_task, actor, role_gate.UPDATE_ISSUE)

        try:
            requested = IssueStatus(status_value(status))
        except ValueError:
            raise InvalidIssueUpdateError(issue.id, f"unknown status {status!r}") from None

        previous = IssueStatus(status_value(issue.status))
        if previous == IssueStatus.RESOLVED:
            raise InvalidIssueUpdateError(issue.id, "issue is already resolved")
        if requested == previous:
            raise InvalidIssueUpdateError(issue.id, f"issue is already {previous.value}")
        if requested == IssueStatus.RESOLVED and not (resolution or "").strip():
            raise InvalidIssueUpdateError(issue.id, "a resolution is required to resolve")

        self.tasks.set_issue_status(
            issue, requested, actor.user_id, resolution=(resolution or "").strip() or None
        )
        self.auditor.record_issue_updated(issue.id, actor.user_id, previous.value, requested.value)
        return issue
