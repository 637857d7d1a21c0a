"""
cropchain_services.harvest_reminders -- Harvest-due reminders.

Finds growing batches whose expected harvest falls inside the reminder
window and leaves a HarvestDue event for each, addressed to the field agent
who registered the batch.  Triggered by request; there is no scheduler loop.
A batch is reminded at most once per day.
"""

from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from cropchain_kernel.domain.clock import Clock, SystemClock
from cropchain_kernel.domain.events import DomainEventBuffer, HarvestDue
from cropchain_kernel.domain.roles import Actor
from cropchain_kernel.domain.statuses import CropBatchStatus
from cropchain_kernel.logging_config import get_logger
from cropchain_kernel.models.crop_batch import CropBatch
from cropchain_services import role_gate

logger = get_logger("services.harvest_reminders")

REMINDER_STATUSES = (CropBatchStatus.GROWING, CropBatchStatus.READY_FOR_HARVEST)


class HarvestReminderService:

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        events: DomainEventBuffer | None = None,
        window_days: int = 7,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.events = events if events is not None else DomainEventBuffer()
        self.window_days = window_days

    def due_batches(self, as_of: date) -> list[CropBatch]:
        horizon = as_of + timedelta(days=self.window_days)
        return list(
            self.session.execute(
                select(CropBatch)
                .where(
                    CropBatch.is_active.is_(True),
                    CropBatch.status.in_([s.value for s in REMINDER_STATUSES]),
                    CropBatch.expected_harvest.is_not(None),
                    CropBatch.expected_harvest >= as_of,
                    CropBatch.expected_harvest <= horizon,
                )
                .order_by(CropBatch.expected_harvest, CropBatch.batch_code)
            ).unique().scalars()
        )

    def send_reminders(self, actor: Actor, as_of: date | None = None) -> list[HarvestDue]:
        role_gate.check_role(actor, role_gate.SEND_HARVEST_REMINDERS)
        as_of = as_of or self.clock.today()

        reminders = []
        for batch in self.due_batches(as_of):
            reminder = HarvestDue(
                batch_id=batch.id,
                batch_code=batch.batch_code,
                recipient_id=batch.created_by_id,
                crop_type=batch.crop_type,
                expected_harvest=batch.expected_harvest,
                dedup_scope=f"harvest_due:{batch.id}:{as_of.isoformat()}",
                actor_id=actor.user_id,
            )
            self.events.record(reminder)
            reminders.append(reminder)

        logger.info(
            "harvest_reminders_prepared",
            extra={
                "as_of": as_of.isoformat(),
                "window_days": self.window_days,
                "batch_count": len(reminders),
            },
        )
        return reminders
