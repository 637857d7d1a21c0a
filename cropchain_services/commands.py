"""
cropchain_services.commands -- The command facade.

Responsibility:
    The single entry point callers use.  Each command:

      1. opens one ``session_scope()`` transaction,
      2. resolves the caller token to a verified Actor,
      3. runs the service operation (role gate first, then state checks),
      4. commits, or rolls back everything on any exception,
      5. dispatches the recorded domain events in a separate transaction.

    Step 5 is best effort: a failure there is logged as
    ``notification_dispatch_failed`` and reported on the result, and the
    committed state change stands.

Architecture position:
    Outermost services layer.  Owns transaction boundaries; nothing below
    it commits.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from cropchain_config.schema import CropChainConfig
from cropchain_kernel.db.engine import session_scope
from cropchain_kernel.domain.clock import Clock, SystemClock
from cropchain_kernel.domain.events import DomainEvent, DomainEventBuffer
from cropchain_kernel.domain.roles import Actor
from cropchain_kernel.domain.statuses import status_value
from cropchain_kernel.exceptions import CropChainError
from cropchain_kernel.logging_config import LogContext, get_logger
from cropchain_kernel.services.notification_service import NotificationService
from cropchain_services import role_gate
from cropchain_services.crop_workflow import CropBatchStateMachine
from cropchain_services.harvest_reminders import HarvestReminderService
from cropchain_services.identity import IdentityResolver
from cropchain_services.notification_dispatcher import NotificationDispatcher
from cropchain_services.resource_scheduler import ResourceScheduler
from cropchain_services.transport_lifecycle import TransportLifecycle

logger = get_logger("services.commands")


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a committed command."""

    ok: bool = True
    status: str | None = None
    batch_id: UUID | None = None
    batch_code: str | None = None
    task_id: UUID | None = None
    issue_id: UUID | None = None
    count: int | None = None
    notification_warnings: tuple[str, ...] = ()


Work = Callable[[Session, Actor, DomainEventBuffer], CommandResult]


class SupplyChainCommands:
    """
    Usage:
        commands = SupplyChainCommands(get_session_factory(), ProfileIdentityResolver())
        result = commands.update_crop_status(token, batch_id, "GROWING")
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        identity: IdentityResolver,
        clock: Clock | None = None,
        config: CropChainConfig | None = None,
        dispatcher_factory: Callable[[Session, Clock], NotificationDispatcher] | None = None,
    ):
        self._factory = session_factory
        self._identity = identity
        self._clock = clock or SystemClock()
        self._config = config or CropChainConfig()
        self._dispatcher_factory = dispatcher_factory or NotificationDispatcher

    # -------------------------------------------------------------------------
    # Wiring
    # -------------------------------------------------------------------------

    def _machine(self, session: Session, events: DomainEventBuffer) -> CropBatchStateMachine:
        return CropBatchStateMachine(
            session,
            self._clock,
            events,
            schedulable_statuses=self._config.scheduling.schedulable_statuses,
            code_prefix=self._config.batch_codes.prefix,
        )

    def _scheduler(self, session: Session, events: DomainEventBuffer) -> ResourceScheduler:
        return ResourceScheduler(session, self._clock, machine=self._machine(session, events))

    def _lifecycle(self, session: Session, events: DomainEventBuffer) -> TransportLifecycle:
        return TransportLifecycle(session, self._clock, scheduler=self._scheduler(session, events))

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _run(self, command: str, token: str, work: Work, **log_fields: Any) -> CommandResult:
        events = DomainEventBuffer()
        with LogContext.bind(correlation_id=uuid4(), command=command, **log_fields):
            try:
                with session_scope(self._factory) as session:
                    actor = self._identity.resolve(token, session)
                    with LogContext.bind(actor_id=actor.user_id, actor_role=actor.role.value):
                        result = work(session, actor, events)
            except CropChainError as exc:
                logger.info(
                    "command_rejected",
                    extra={"code": exc.code, "error_type": type(exc).__name__, "error": str(exc)},
                )
                raise

            warnings = self._dispatch(events.drain())
            logger.info("command_completed", extra={"notification_warnings": len(warnings)})
        return replace(result, notification_warnings=warnings)

    def _dispatch(self, events: list[DomainEvent]) -> tuple[str, ...]:
        if not events:
            return ()
        try:
            with session_scope(self._factory) as session:
                self._dispatcher_factory(session, self._clock).dispatch(events)
        except Exception as exc:
            # The primary change is committed; fan-out failures are reported, not raised
            logger.warning(
                "notification_dispatch_failed",
                extra={"event_count": len(events), "error_type": type(exc).__name__},
                exc_info=True,
            )
            return (f"{type(exc).__name__}: {exc}",)
        return ()

    # -------------------------------------------------------------------------
    # Crop batch
    # -------------------------------------------------------------------------

    def create_crop_batch(
        self,
        token: str,
        farm_id: UUID,
        crop_type: str,
        quantity: Decimal | str,
        unit: str = "kg",
        variety: str | None = None,
        planting_date: date | None = None,
        expected_harvest: date | None = None,
        notes: str | None = None,
    ) -> CommandResult:
        def work(session, actor, events):
            batch = self._machine(session, events).create_batch(
                actor,
                farm_id,
                crop_type,
                quantity,
                unit=unit,
                variety=variety,
                planting_date=planting_date,
                expected_harvest=expected_harvest,
                notes=notes,
            )
            return CommandResult(
                status=status_value(batch.status), batch_id=batch.id, batch_code=batch.batch_code
            )

        return self._run("create_crop_batch", token, work)

    def update_crop_status(
        self,
        token: str,
        batch_id: UUID,
        new_status: str,
        notes: str | None = None,
        quantity: Decimal | str | None = None,
    ) -> CommandResult:
        def work(session, actor, events):
            batch = self._machine(session, events).transition(
                batch_id, new_status, actor, notes=notes, quantity=quantity
            )
            return CommandResult(status=status_value(batch.status), batch_id=batch.id)

        return self._run("update_crop_status", token, work, batch_id=batch_id)

    def review_batch(
        self, token: str, batch_id: UUID, decision: str, notes: str | None = None
    ) -> CommandResult:
        def work(session, actor, events):
            batch = self._machine(session, events).review_batch(actor, batch_id, decision, notes)
            return CommandResult(status=status_value(batch.status), batch_id=batch.id)

        return self._run("review_batch", token, work, batch_id=batch_id)

    def request_transport(
        self,
        token: str,
        batch_id: UUID,
        warehouse_id: UUID,
        coordinator_id: UUID,
        notes: str | None = None,
    ) -> CommandResult:
        def work(session, actor, events):
            batch = self._machine(session, events).request_transport(
                actor, batch_id, warehouse_id, coordinator_id, notes=notes
            )
            return CommandResult(status=status_value(batch.status), batch_id=batch.id)

        return self._run("request_transport", token, work, batch_id=batch_id)

    def update_packaging(
        self, token: str, batch_id: UUID, new_status: str, notes: str | None = None
    ) -> CommandResult:
        def work(session, actor, events):
            batch = self._machine(session, events).update_packaging(
                actor, batch_id, new_status, notes=notes
            )
            return CommandResult(status=status_value(batch.status), batch_id=batch.id)

        return self._run("update_packaging", token, work, batch_id=batch_id)

    def confirm_receipt(
        self,
        token: str,
        batch_id: UUID,
        scanned_code: str | None = None,
        notes: str | None = None,
    ) -> CommandResult:
        def work(session, actor, events):
            batch = self._machine(session, events).confirm_receipt(
                actor, batch_id, scanned_code=scanned_code, notes=notes
            )
            return CommandResult(status=status_value(batch.status), batch_id=batch.id)

        return self._run("confirm_receipt", token, work, batch_id=batch_id)

    def store_batch(self, token: str, batch_id: UUID, notes: str | None = None) -> CommandResult:
        def work(session, actor, events):
            batch = self._machine(session, events).store_batch(actor, batch_id, notes=notes)
            return CommandResult(status=status_value(batch.status), batch_id=batch.id)

        return self._run("store_batch", token, work, batch_id=batch_id)

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def schedule_transport(
        self,
        token: str,
        batch_id: UUID,
        driver_id: UUID,
        vehicle_id: UUID,
        scheduled_date: date | datetime | str,
        pickup_location: str,
        delivery_location: str,
        notes: str | None = None,
    ) -> CommandResult:
        def work(session, actor, events):
            task = self._scheduler(session, events).schedule_transport(
                batch_id,
                driver_id,
                vehicle_id,
                scheduled_date,
                pickup_location,
                delivery_location,
                actor,
                notes=notes,
            )
            return CommandResult(
                status=status_value(task.status), batch_id=task.crop_batch_id, task_id=task.id
            )

        return self._run("schedule_transport", token, work, batch_id=batch_id)

    def assign_driver_to_task(
        self,
        token: str,
        task_id: UUID,
        driver_id: UUID,
        vehicle_id: UUID,
        scheduled_date: date | datetime | str | None = None,
        notes: str | None = None,
    ) -> CommandResult:
        def work(session, actor, events):
            task = self._scheduler(session, events).assign_driver_to_task(
                task_id, driver_id, vehicle_id, actor, scheduled_date=scheduled_date, notes=notes
            )
            return CommandResult(status=status_value(task.status), task_id=task.id)

        return self._run("assign_driver_to_task", token, work, task_id=task_id)

    def update_transport_task_status(
        self, token: str, task_id: UUID, new_status: str, notes: str | None = None
    ) -> CommandResult:
        def work(session, actor, events):
            task = self._lifecycle(session, events).update_transport_task_status(
                task_id, new_status, actor, notes=notes
            )
            return CommandResult(status=status_value(task.status), task_id=task.id)

        return self._run("update_transport_task_status", token, work, task_id=task_id)

    def confirm_pickup(
        self, token: str, task_id: UUID, scanned_code: str, notes: str | None = None
    ) -> CommandResult:
        def work(session, actor, events):
            task = self._lifecycle(session, events).confirm_pickup(
                task_id, scanned_code, actor, notes=notes
            )
            return CommandResult(status=status_value(task.status), task_id=task.id)

        return self._run("confirm_pickup", token, work, task_id=task_id)

    def confirm_delivery(
        self, token: str, task_id: UUID, scanned_code: str, notes: str | None = None
    ) -> CommandResult:
        def work(session, actor, events):
            task = self._lifecycle(session, events).confirm_delivery(
                task_id, scanned_code, actor, notes=notes
            )
            return CommandResult(status=status_value(task.status), task_id=task.id)

        return self._run("confirm_delivery", token, work, task_id=task_id)

    def report_issue(
        self,
        token: str,
        task_id: UUID,
        issue_type: str,
        description: str,
        location: str | None = None,
    ) -> CommandResult:
        def work(session, actor, events):
            issue = self._lifecycle(session, events).report_issue(
                task_id, issue_type, description, actor, location=location
            )
            return CommandResult(
                status=status_value(issue.status), task_id=task_id, issue_id=issue.id
            )

        return self._run("report_issue", token, work, task_id=task_id)

    def update_issue(
        self, token: str, issue_id: UUID, status: str, resolution: str | None = None
    ) -> CommandResult:
        def work(session, actor, events):
            issue = self._lifecycle(session, events).update_issue(
                actor, issue_id, status, resolution=resolution
            )
            return CommandResult(
                status=status_value(issue.status),
                task_id=issue.transport_task_id,
                issue_id=issue.id,
            )

        return self._run("update_issue", token, work)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def mark_notification_read(self, token: str, notification_id: UUID) -> CommandResult:
        def work(session, actor, events):
            role_gate.check_role(actor, role_gate.MARK_NOTIFICATION_READ)
            NotificationService(session, self._clock).mark_as_read(notification_id, actor)
            return CommandResult()

        return self._run("mark_notification_read", token, work)

    def mark_all_notifications_read(self, token: str) -> CommandResult:
        def work(session, actor, events):
            role_gate.check_role(actor, role_gate.MARK_NOTIFICATION_READ)
            count = NotificationService(session, self._clock).mark_all_as_read(actor)
            return CommandResult(count=count)

        return self._run("mark_all_notifications_read", token, work)

    def send_harvest_reminders(self, token: str, as_of: date | None = None) -> CommandResult:
        def work(session, actor, events):
            reminders = HarvestReminderService(
                session,
                self._clock,
                events,
                window_days=self._config.notifications.harvest_reminder_window_days,
            ).send_reminders(actor, as_of=as_of)
            return CommandResult(count=len(reminders))

        return self._run("send_harvest_reminders", token, work)
