"""
TransportTaskService -- persistence primitives for transport tasks and issues.

Responsibility:
    Task creation (translating the partial-unique-index violations into
    typed errors), task lookups, the conditional task status write, and
    transport issue records.

Invariants enforced:
    - Task status writes are compare-and-swap on the observed prior status.
    - A task insert that would give a batch a second active task, or a
      driver/vehicle a second active task on the same date, is rejected by
      the database and surfaces as ActiveTaskExistsError or
      SchedulingConflictError.
"""

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from cropchain_kernel.domain.statuses import (
    IssueStatus,
    IssueType,
    TransportTaskStatus,
    status_value,
)
from cropchain_kernel.exceptions import (
    ActiveTaskExistsError,
    SchedulingConflictError,
    StaleStatusError,
    TransportIssueNotFoundError,
    TransportTaskNotFoundError,
)
from cropchain_kernel.logging_config import get_logger
from cropchain_kernel.models.transport import TransportIssue, TransportTask
from cropchain_kernel.services.base import BaseService

logger = get_logger("services.transport")


def append_note(existing: str | None, note: str | None) -> str | None:
    if not note:
        return existing
    if not existing:
        return note
    return f"{existing}\n{note}"


class TransportTaskService(BaseService):

    def get(self, task_id: UUID, lock: bool = False) -> TransportTask:
        stmt = select(TransportTask).where(TransportTask.id == task_id)
        if lock:
            stmt = stmt.with_for_update(of=TransportTask)
        task = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).unique().scalar_one_or_none()
        if task is None:
            raise TransportTaskNotFoundError(task_id)
        return task

    def create_task(
        self,
        crop_batch_id: UUID,
        coordinator_id: UUID,
        scheduled_date: date,
        pickup_location: str,
        delivery_location: str,
        origin_batch_status: str,
        driver_id: UUID | None = None,
        vehicle_id: UUID | None = None,
        notes: str | None = None,
    ) -> TransportTask:
        """
        Insert a SCHEDULED task.

        A unique-index violation is translated to a typed error; the caller's
        transaction is rolled back by session_scope as usual.
        """
        task = TransportTask(
            crop_batch_id=crop_batch_id,
            driver_id=driver_id,
            vehicle_id=vehicle_id,
            coordinator_id=coordinator_id,
            status=TransportTaskStatus.SCHEDULED.value,
            origin_batch_status=origin_batch_status,
            scheduled_date=scheduled_date,
            pickup_location=pickup_location,
            delivery_location=delivery_location,
            notes=notes,
            created_by_id=coordinator_id,
        )
        self.session.add(task)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise self._translate_integrity_error(
                exc, crop_batch_id, driver_id, vehicle_id, scheduled_date
            ) from exc

        logger.info(
            "transport_task_created",
            extra={
                "task_id": str(task.id),
                "batch_id": str(crop_batch_id),
                "scheduled_date": scheduled_date.isoformat(),
            },
        )
        return task

    def _translate_integrity_error(
        self,
        exc: IntegrityError,
        crop_batch_id: UUID,
        driver_id: UUID | None,
        vehicle_id: UUID | None,
        scheduled_date: date,
    ):
        # PostgreSQL names the index, SQLite names the columns
        message = str(exc.orig)
        logger.warning(
            "transport_task_write_conflict",
            extra={"batch_id": str(crop_batch_id), "detail": message},
        )
        if "uq_transport_task_driver_date" in message or "driver_id" in message:
            return SchedulingConflictError("Driver", driver_id, scheduled_date)
        if "uq_transport_task_vehicle_date" in message or "vehicle_id" in message:
            return SchedulingConflictError("Vehicle", vehicle_id, scheduled_date)
        return ActiveTaskExistsError(crop_batch_id, None, "SHIPPED")

    def compare_and_set_status(
        self,
        task: TransportTask,
        expected: TransportTaskStatus,
        new: TransportTaskStatus,
        actor_id: UUID,
        **coupled: Any,
    ) -> TransportTask:
        """
        Raises:
            StaleStatusError: the task is no longer at ``expected``.
            SchedulingConflictError / ActiveTaskExistsError: re-entering an
                active status collides with another task's booking.
        """
        try:
            result = self.session.execute(
                update(TransportTask)
                .where(TransportTask.id == task.id, TransportTask.status == expected.value)
                .values(status=new.value, updated_by_id=actor_id, **coupled)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as exc:
            raise self._translate_integrity_error(
                exc, task.crop_batch_id, task.driver_id, task.vehicle_id, task.scheduled_date
            ) from exc
        if result.rowcount != 1:
            logger.warning(
                "task_status_cas_miss",
                extra={
                    "task_id": str(task.id),
                    "expected_status": expected.value,
                    "new_status": new.value,
                },
            )
            raise StaleStatusError("TransportTask", task.id, expected.value, new.value)
        self.session.refresh(task)
        return task

    def assign_resources(
        self,
        task: TransportTask,
        driver_id: UUID,
        vehicle_id: UUID,
        scheduled_date: date,
        actor_id: UUID,
        notes: str | None = None,
    ) -> TransportTask:
        """Fill in driver and vehicle on a SCHEDULED task that has none yet."""
        try:
            result = self.session.execute(
                update(TransportTask)
                .where(
                    TransportTask.id == task.id,
                    TransportTask.status == TransportTaskStatus.SCHEDULED.value,
                    TransportTask.driver_id.is_(None),
                    TransportTask.vehicle_id.is_(None),
                )
                .values(
                    driver_id=driver_id,
                    vehicle_id=vehicle_id,
                    scheduled_date=scheduled_date,
                    notes=append_note(task.notes, notes),
                    updated_by_id=actor_id,
                )
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as exc:
            raise self._translate_integrity_error(
                exc, task.crop_batch_id, driver_id, vehicle_id, scheduled_date
            ) from exc
        if result.rowcount != 1:
            raise StaleStatusError(
                "TransportTask",
                task.id,
                TransportTaskStatus.SCHEDULED.value,
                TransportTaskStatus.SCHEDULED.value,
            )
        self.session.refresh(task)
        return task

    # -------------------------------------------------------------------------
    # Issues
    # -------------------------------------------------------------------------

    def create_issue(
        self,
        task: TransportTask,
        issue_type: IssueType,
        description: str,
        reported_by_id: UUID,
        location: str | None = None,
    ) -> TransportIssue:
        issue = TransportIssue(
            transport_task_id=task.id,
            reported_by_id=reported_by_id,
            issue_type=issue_type.value,
            description=description,
            location=location,
            status=IssueStatus.OPEN.value,
            created_by_id=reported_by_id,
        )
        self.session.add(issue)
        self.session.flush()
        logger.info(
            "transport_issue_created",
            extra={
                "issue_id": str(issue.id),
                "task_id": str(task.id),
                "issue_type": issue_type.value,
            },
        )
        return issue

    def get_issue(self, issue_id: UUID) -> TransportIssue:
        issue = self.session.execute(
            select(TransportIssue).where(TransportIssue.id == issue_id)
        ).unique().scalar_one_or_none()
        if issue is None:
            raise TransportIssueNotFoundError(issue_id)
        return issue

    def set_issue_status(
        self,
        issue: TransportIssue,
        status: IssueStatus,
        actor_id: UUID,
        resolution: str | None = None,
    ) -> TransportIssue:
        previous = status_value(issue.status)
        issue.status = status.value
        issue.updated_by_id = actor_id
        if resolution is not None:
            issue.resolution = resolution
        if status == IssueStatus.RESOLVED:
            issue.resolved_at = self.clock.now()
        self.session.flush()
        logger.info(
            "transport_issue_updated",
            extra={
                "issue_id": str(issue.id),
                "previous_status": previous,
                "new_status": status.value,
            },
        )
        return issue
