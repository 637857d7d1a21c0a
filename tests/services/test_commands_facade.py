"""
SupplyChainCommands: one transaction and one correlation id per command.

Invariants under test:
- Every log line a command emits carries the same correlation_id.
- A rejected command is logged with its machine-readable code and leaves
  nothing behind.
- The log context is restored once the command returns.
"""

import pytest

from cropchain_kernel.exceptions import (
    InvalidTransitionError,
    ProfileNotFoundError,
    SchedulingConflictError,
)
from cropchain_kernel.logging_config import LogContext
from cropchain_kernel.models import AuditEvent, CropBatch


def _by_message(records, message):
    return [r for r in records if r["message"] == message]


class TestCorrelation:

    def test_command_logs_share_a_correlation_id(self, commands, world, captured_logs):
        commands.create_crop_batch("field", world.farm_id, "Sorghum", "120")
        records = captured_logs()

        [completed] = _by_message(records, "command_completed")
        assert completed["command"] == "create_crop_batch"
        [audit] = _by_message(records, "audit_event_created")
        assert audit["correlation_id"] == completed["correlation_id"]
        assert audit["actor_id"] == str(world.user("field"))
        assert audit["actor_role"] == "field_agent"

    def test_each_command_gets_its_own_id(self, commands, make_batch, captured_logs):
        batch_id = make_batch()
        commands.update_crop_status("field", batch_id, "GROWING")
        ids = [r["correlation_id"] for r in _by_message(captured_logs(), "command_completed")]
        assert len(ids) == len(set(ids)) == 2

    def test_context_restored_after_command(self, commands, world):
        commands.create_crop_batch("field", world.farm_id, "Sorghum", "120")
        assert LogContext.get_all() == {}

    def test_batch_id_bound_for_batch_commands(self, commands, make_batch, captured_logs):
        batch_id = make_batch()
        commands.update_crop_status("field", batch_id, "GROWING")
        completed = _by_message(captured_logs(), "command_completed")[-1]
        assert completed["batch_id"] == str(batch_id)


class TestRejection:

    def test_rejection_logged_with_code(self, commands, make_batch, captured_logs):
        batch_id = make_batch()
        with pytest.raises(InvalidTransitionError):
            commands.update_crop_status("field", batch_id, "STORED_FOREVER")

        [rejected] = _by_message(captured_logs(), "command_rejected")
        assert rejected["code"] == "INVALID_TRANSITION"
        assert rejected["error_type"] == "InvalidTransitionError"
        assert rejected["command"] == "update_crop_status"

    def test_unknown_token_rejected_before_any_write(
        self, commands, world, count_rows, captured_logs
    ):
        with pytest.raises(ProfileNotFoundError):
            commands.create_crop_batch("stranger", world.farm_id, "Sorghum", "120")
        assert count_rows(CropBatch) == 0
        assert count_rows(AuditEvent) == 0
        [rejected] = _by_message(captured_logs(), "command_rejected")
        assert rejected["code"] == "PROFILE_NOT_FOUND"

    def test_failed_command_rolls_back(self, schedule_task, make_batch, reload, count_rows):
        schedule_task()
        batch_id = make_batch("PROCESSED", request_transport=True)
        audits = count_rows(AuditEvent)
        with pytest.raises(SchedulingConflictError):
            schedule_task(batch_id)
        assert reload(CropBatch, batch_id).status == "PROCESSED"
        assert count_rows(AuditEvent) == audits


class TestResults:

    def test_create_returns_code(self, commands, world):
        result = commands.create_crop_batch("field", world.farm_id, "Sorghum", "120")
        assert result.ok
        assert result.status == "PLANTED"
        assert result.batch_code == "CB-2025-001"
        assert result.notification_warnings == ()
