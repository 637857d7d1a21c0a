"""
Append-only enforcement through ORM listeners.

AuditEvent rows are never updated or deleted.  Notifications only change
their read flag.  Crop batches and transport tasks are never deleted.
"""

import pytest
from sqlalchemy import select

from cropchain_kernel.exceptions import ImmutabilityViolationError
from cropchain_kernel.models import AuditEvent, CropBatch, Notification, TransportTask


def _first(session, model):
    return session.execute(select(model).limit(1)).unique().scalar_one()


class TestAuditEvents:

    def test_update_blocked(self, session, make_batch):
        make_batch()
        event = _first(session, AuditEvent)
        event.action = "crop_batch_deleted"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "AuditEvent"

    def test_delete_blocked(self, session, make_batch):
        make_batch()
        session.delete(_first(session, AuditEvent))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestNotifications:

    def test_read_flag_may_change(self, session, clock, make_batch):
        make_batch("READY_FOR_HARVEST")
        note = _first(session, Notification)
        note.is_read = True
        note.read_at = clock.now()
        session.flush()

    def test_message_rewrite_blocked(self, session, make_batch, captured_logs):
        make_batch("READY_FOR_HARVEST")
        note = _first(session, Notification)
        note.message = "Nothing to see here"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert "message" in exc_info.value.reason
        assert any(
            r["message"] == "immutability_violation_blocked" for r in captured_logs()
        )

    def test_delete_blocked(self, session, make_batch):
        make_batch("READY_FOR_HARVEST")
        session.delete(_first(session, Notification))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestRetainedEntities:

    def test_crop_batch_never_deleted(self, session, make_batch):
        make_batch()
        session.delete(_first(session, CropBatch))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_transport_task_never_deleted(self, session, schedule_task):
        schedule_task()
        session.delete(_first(session, TransportTask))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_crop_batch_may_be_updated(self, session, make_batch):
        make_batch()
        batch = _first(session, CropBatch)
        batch.notes = "Irrigated twice weekly"
        session.flush()
