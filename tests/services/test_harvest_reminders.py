"""
Harvest-due reminders.

Invariants under test:
- Only GROWING and READY_FOR_HARVEST batches whose expected harvest lies
  within [as_of, as_of + window] are reminded.
- The reminder goes to the field agent who registered the batch.
- A batch is reminded at most once per day.
"""

from datetime import date

import pytest
from sqlalchemy import select

from cropchain_kernel.exceptions import UnauthorizedError
from cropchain_kernel.models import Notification
from cropchain_services.harvest_reminders import HarvestReminderService

AS_OF = date(2025, 3, 1)


@pytest.fixture
def reminders_for(read_db, world):
    def _reminders(token):
        return read_db(
            lambda s: s.execute(
                select(Notification).where(
                    Notification.user_id == world.user(token),
                    Notification.title == "Harvest due",
                )
            ).scalars().all()
        )

    return _reminders


class TestReminderWindow:

    def test_due_batches_respect_window_and_status(self, session, clock, make_batch):
        due_today = make_batch("GROWING", expected_harvest=date(2025, 3, 1))
        due_edge = make_batch("READY_FOR_HARVEST", expected_harvest=date(2025, 3, 8))
        make_batch("GROWING", expected_harvest=date(2025, 3, 9))
        make_batch("GROWING", expected_harvest=date(2025, 2, 28))
        make_batch("PLANTED", expected_harvest=date(2025, 3, 2))
        make_batch("HARVESTED", expected_harvest=date(2025, 3, 2))
        make_batch("GROWING")

        due = HarvestReminderService(session, clock).due_batches(AS_OF)
        assert [b.id for b in due] == [due_today, due_edge]

    def test_window_is_configurable(self, session, clock, make_batch):
        make_batch("GROWING", expected_harvest=date(2025, 3, 10))
        assert HarvestReminderService(session, clock, window_days=3).due_batches(AS_OF) == []
        assert len(HarvestReminderService(session, clock, window_days=10).due_batches(AS_OF)) == 1

    def test_events_name_the_registering_agent(self, session, clock, world, make_batch):
        batch_id = make_batch("GROWING", expected_harvest=date(2025, 3, 3), token="field_2")
        service = HarvestReminderService(session, clock)

        [reminder] = service.send_reminders(world.actor("procurement"), as_of=AS_OF)
        assert reminder.batch_id == batch_id
        assert reminder.recipient_id == world.user("field_2")
        assert reminder.dedup_scope == f"harvest_due:{batch_id}:2025-03-01"
        assert service.events.drain() == [reminder]


class TestSendReminders:

    def test_reminder_reaches_field_agent(self, commands, make_batch, reminders_for):
        make_batch("GROWING", crop_type="Yam", expected_harvest=date(2025, 3, 3))

        assert commands.send_harvest_reminders("procurement").count == 1
        [note] = reminders_for("field")
        assert note.type == "HARVEST_READY"
        assert "(Yam) is expected to be harvested on 2025-03-03" in note.message
        assert note.notification_metadata["expectedHarvest"] == "2025-03-03"
        assert reminders_for("field_2") == []

    def test_once_per_day(self, commands, make_batch, reminders_for):
        make_batch("GROWING", expected_harvest=date(2025, 3, 3))

        commands.send_harvest_reminders("procurement", as_of=AS_OF)
        commands.send_harvest_reminders("admin", as_of=AS_OF)
        assert len(reminders_for("field")) == 1

        commands.send_harvest_reminders("procurement", as_of=date(2025, 3, 2))
        assert len(reminders_for("field")) == 2

    def test_nothing_due(self, commands):
        assert commands.send_harvest_reminders("admin").count == 0

    @pytest.mark.parametrize("token", ["field", "coordinator", "driver_a", "manager"])
    def test_only_procurement_side_roles(self, commands, token):
        with pytest.raises(UnauthorizedError):
            commands.send_harvest_reminders(token)
