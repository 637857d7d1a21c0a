"""
cropchain_services.role_gate -- Role enforcement at the command boundary.

Responsibility:
    Decide, before any state is read for writing, whether an actor's role
    may perform an action, and for crop status writes whether the role may
    target the requested status from the batch's current status.

Architecture position:
    Services layer.  Pure: no session, no clock.  Every command calls
    check_role first; CropBatchStateMachine calls check_transition.

Invariants:
    - field_agent can never target SHIPPED, RECEIVED or STORED.
    - field_agent writes fail once the batch has reached PACKAGED or later.
"""

from __future__ import annotations

from dataclasses import dataclass

from cropchain_kernel.domain.lifecycles import FIELD_HANDOFF_STATUSES
from cropchain_kernel.domain.roles import Actor, Role
from cropchain_kernel.domain.statuses import CropBatchStatus as B
from cropchain_kernel.domain.statuses import status_value
from cropchain_kernel.exceptions import (
    CustodyHandoffError,
    RoleReservedStatusError,
    UnauthorizedError,
)
from cropchain_kernel.logging_config import get_logger

logger = get_logger("services.role_gate")

# Action names
CREATE_CROP_BATCH = "create_crop_batch"
UPDATE_CROP_STATUS = "update_crop_status"
REVIEW_BATCH = "review_batch"
REQUEST_TRANSPORT = "request_transport"
SCHEDULE_TRANSPORT = "schedule_transport"
ASSIGN_DRIVER = "assign_driver"
UPDATE_TRANSPORT_STATUS = "update_transport_status"
CONFIRM_PICKUP = "confirm_pickup"
CONFIRM_DELIVERY = "confirm_delivery"
REPORT_ISSUE = "report_issue"
UPDATE_ISSUE = "update_issue"
UPDATE_PACKAGING = "update_packaging"
CONFIRM_RECEIPT = "confirm_receipt"
STORE_BATCH = "store_batch"
MARK_NOTIFICATION_READ = "mark_notification_read"
SEND_HARVEST_REMINDERS = "send_harvest_reminders"


@dataclass(frozen=True)
class RolePermission:
    """What one role may do, and which batch statuses it may write."""

    actions: frozenset[str]
    target_statuses: frozenset[B] = frozenset()

    def can(self, action: str) -> bool:
        return action in self.actions

    def can_target(self, status: B) -> bool:
        return status in self.target_statuses


_PROCUREMENT = RolePermission(
    actions=frozenset({
        REVIEW_BATCH,
        REQUEST_TRANSPORT,
        SEND_HARVEST_REMINDERS,
        UPDATE_CROP_STATUS,
        MARK_NOTIFICATION_READ,
    }),
    target_statuses=frozenset({B.PROCESSED, B.READY_FOR_HARVEST, B.READY_FOR_PACKAGING}),
)

ROLE_PERMISSIONS: dict[Role, RolePermission] = {
    Role.FIELD_AGENT: RolePermission(
        actions=frozenset({CREATE_CROP_BATCH, UPDATE_CROP_STATUS, MARK_NOTIFICATION_READ}),
        target_statuses=frozenset({
            B.GROWING,
            B.READY_FOR_HARVEST,
            B.HARVESTED,
            B.PENDING_APPROVAL,
            B.READY_FOR_PACKAGING,
            B.PACKAGING,
            B.PACKAGED,
        }),
    ),
    Role.PROCUREMENT_OFFICER: _PROCUREMENT,
    Role.ADMIN: _PROCUREMENT,
    Role.MANAGER: _PROCUREMENT,
    Role.TRANSPORT_COORDINATOR: RolePermission(
        actions=frozenset({
            SCHEDULE_TRANSPORT,
            ASSIGN_DRIVER,
            UPDATE_TRANSPORT_STATUS,
            REPORT_ISSUE,
            UPDATE_ISSUE,
            MARK_NOTIFICATION_READ,
        }),
        target_statuses=frozenset({B.SHIPPED, B.PROCESSED, B.PACKAGED}),
    ),
    Role.TRANSPORT_DRIVER: RolePermission(
        actions=frozenset({
            CONFIRM_PICKUP,
            CONFIRM_DELIVERY,
            REPORT_ISSUE,
            MARK_NOTIFICATION_READ,
        }),
    ),
    Role.WAREHOUSE_MANAGER: RolePermission(
        actions=frozenset({
            UPDATE_PACKAGING,
            CONFIRM_RECEIPT,
            STORE_BATCH,
            MARK_NOTIFICATION_READ,
        }),
        target_statuses=frozenset({B.PACKAGING, B.PACKAGED, B.RECEIVED, B.STORED}),
    ),
}


def permission_for(role: Role) -> RolePermission:
    return ROLE_PERMISSIONS.get(role, RolePermission(actions=frozenset()))


def is_allowed(
    actor: Actor,
    action: str,
    from_status: B | str | None = None,
    to_status: B | str | None = None,
) -> tuple[bool, str]:
    """Check whether the actor may perform the action.

    Returns:
        (allowed, reason).  reason is empty when allowed.
    """
    permission = permission_for(actor.role)
    if not permission.can(action):
        return (False, f"role '{actor.role.value}' may not {action}")

    if from_status is not None and actor.role == Role.FIELD_AGENT:
        if B(status_value(from_status)) in FIELD_HANDOFF_STATUSES:
            return (False, f"batch is {status_value(from_status)}; custody has passed on")

    if to_status is not None and not permission.can_target(B(status_value(to_status))):
        return (False, f"status {status_value(to_status)} is reserved for another role")

    return (True, "")


def check_role(actor: Actor, action: str) -> None:
    """
    Raises:
        UnauthorizedError: the role may not perform ``action`` at all.
    """
    if not permission_for(actor.role).can(action):
        logger.info(
            "role_check_denied",
            extra={"actor_role": actor.role.value, "action": action},
        )
        raise UnauthorizedError(actor.role.value, action)


def check_transition(
    actor: Actor,
    action: str,
    batch_id,
    from_status: B | str,
    to_status: B | str,
) -> None:
    """Role check plus the custody and reserved-status checks for a batch write.

    Raises:
        UnauthorizedError: the role may not perform ``action``.
        CustodyHandoffError: a field agent writing a handed-off batch.
        RoleReservedStatusError: ``to_status`` belongs to another role.
    """
    check_role(actor, action)

    current = B(status_value(from_status))
    target = B(status_value(to_status))

    if actor.role == Role.FIELD_AGENT and current in FIELD_HANDOFF_STATUSES:
        logger.info(
            "custody_handoff_denied",
            extra={"batch_id": str(batch_id), "status": current.value},
        )
        raise CustodyHandoffError(actor.role.value, batch_id, current.value)

    if not permission_for(actor.role).can_target(target):
        logger.info(
            "reserved_status_denied",
            extra={
                "batch_id": str(batch_id),
                "actor_role": actor.role.value,
                "to_status": target.value,
            },
        )
        raise RoleReservedStatusError(actor.role.value, batch_id, current.value, target.value)
