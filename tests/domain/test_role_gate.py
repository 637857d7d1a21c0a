"""
Role Gate: per-role actions and status targets.

The gate runs before any state is read for writing, so every check here
is pure; no database is involved.
"""

from uuid import uuid4

import pytest

from cropchain_kernel.domain.roles import Actor, Role
from cropchain_kernel.domain.statuses import CropBatchStatus as B
from cropchain_kernel.exceptions import (
    CustodyHandoffError,
    RoleReservedStatusError,
    UnauthorizedError,
)
from cropchain_services import role_gate


def _actor(role: Role) -> Actor:
    return Actor(user_id=uuid4(), role=role)


class TestCheckRole:

    @pytest.mark.parametrize(
        "role,action",
        [
            (Role.FIELD_AGENT, role_gate.CREATE_CROP_BATCH),
            (Role.PROCUREMENT_OFFICER, role_gate.REQUEST_TRANSPORT),
            (Role.ADMIN, role_gate.REVIEW_BATCH),
            (Role.MANAGER, role_gate.SEND_HARVEST_REMINDERS),
            (Role.TRANSPORT_COORDINATOR, role_gate.SCHEDULE_TRANSPORT),
            (Role.TRANSPORT_DRIVER, role_gate.CONFIRM_PICKUP),
            (Role.WAREHOUSE_MANAGER, role_gate.CONFIRM_RECEIPT),
        ],
    )
    def test_permitted(self, role, action):
        role_gate.check_role(_actor(role), action)

    @pytest.mark.parametrize(
        "role,action",
        [
            (Role.FIELD_AGENT, role_gate.SCHEDULE_TRANSPORT),
            (Role.TRANSPORT_DRIVER, role_gate.UPDATE_CROP_STATUS),
            (Role.TRANSPORT_DRIVER, role_gate.UPDATE_TRANSPORT_STATUS),
            (Role.WAREHOUSE_MANAGER, role_gate.REQUEST_TRANSPORT),
            (Role.PROCUREMENT_OFFICER, role_gate.CONFIRM_DELIVERY),
            (Role.TRANSPORT_COORDINATOR, role_gate.CREATE_CROP_BATCH),
        ],
    )
    def test_denied(self, role, action):
        with pytest.raises(UnauthorizedError) as exc_info:
            role_gate.check_role(_actor(role), action)
        assert exc_info.value.code == "UNAUTHORIZED"
        assert exc_info.value.action == action

    def test_every_role_may_mark_notifications_read(self):
        for role in Role:
            role_gate.check_role(_actor(role), role_gate.MARK_NOTIFICATION_READ)

    def test_denial_is_logged(self, captured_logs):
        with pytest.raises(UnauthorizedError):
            role_gate.check_role(_actor(Role.TRANSPORT_DRIVER), role_gate.STORE_BATCH)
        denied = [r for r in captured_logs() if r["message"] == "role_check_denied"]
        assert denied and denied[0]["action"] == role_gate.STORE_BATCH


class TestCheckTransition:

    @pytest.mark.parametrize("target", [B.SHIPPED, B.RECEIVED, B.STORED])
    def test_field_agent_never_targets_downstream_statuses(self, target):
        with pytest.raises(RoleReservedStatusError):
            role_gate.check_transition(
                _actor(Role.FIELD_AGENT),
                role_gate.UPDATE_CROP_STATUS,
                uuid4(),
                B.PROCESSED,
                target,
            )

    @pytest.mark.parametrize("current", [B.PACKAGED, B.SHIPPED, B.RECEIVED, B.STORED])
    def test_field_agent_loses_custody_after_handoff(self, current):
        with pytest.raises(CustodyHandoffError) as exc_info:
            role_gate.check_transition(
                _actor(Role.FIELD_AGENT),
                role_gate.UPDATE_CROP_STATUS,
                uuid4(),
                current,
                B.GROWING,
            )
        assert exc_info.value.code == "CUSTODY_HANDOFF"
        assert exc_info.value.status == current.value

    def test_custody_error_is_an_authorization_error(self):
        assert issubclass(CustodyHandoffError, UnauthorizedError)

    def test_procurement_targets_processed(self):
        role_gate.check_transition(
            _actor(Role.PROCUREMENT_OFFICER),
            role_gate.UPDATE_CROP_STATUS,
            uuid4(),
            B.PENDING_APPROVAL,
            B.PROCESSED,
        )

    def test_procurement_cannot_start_growing(self):
        with pytest.raises(RoleReservedStatusError):
            role_gate.check_transition(
                _actor(Role.PROCUREMENT_OFFICER),
                role_gate.UPDATE_CROP_STATUS,
                uuid4(),
                B.PLANTED,
                B.GROWING,
            )

    def test_driver_rejected_before_status_checks(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            role_gate.check_transition(
                _actor(Role.TRANSPORT_DRIVER),
                role_gate.UPDATE_CROP_STATUS,
                uuid4(),
                B.SHIPPED,
                B.RECEIVED,
            )
        assert type(exc_info.value) is UnauthorizedError


class TestIsAllowed:

    def test_allowed_has_empty_reason(self):
        assert role_gate.is_allowed(
            _actor(Role.FIELD_AGENT), role_gate.UPDATE_CROP_STATUS, "PLANTED", "GROWING"
        ) == (True, "")

    def test_reports_reason_instead_of_raising(self):
        allowed, reason = role_gate.is_allowed(
            _actor(Role.FIELD_AGENT), role_gate.UPDATE_CROP_STATUS, "PACKAGED", "GROWING"
        )
        assert not allowed
        assert "custody" in reason

    def test_reserved_target(self):
        allowed, reason = role_gate.is_allowed(
            _actor(Role.WAREHOUSE_MANAGER), role_gate.UPDATE_PACKAGING, "PROCESSED", "SHIPPED"
        )
        assert not allowed
        assert "reserved" in reason

    def test_actor_coerces_role_strings(self):
        actor = Actor(user_id=uuid4(), role="transport_driver")
        assert actor.role is Role.TRANSPORT_DRIVER
