"""
ORM-level append-only enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  Listeners registered here block writes that would rewrite history:

Entity          | Rule
----------------|------------------------------------------------------------
AuditEvent      | Never updated, never deleted
Notification    | Never deleted; only is_read / read_at may change
CropBatch       | Never deleted (batches are only soft-deactivated)
TransportTask   | Never deleted (terminal tasks are retained)

If a check fails, ImmutabilityViolationError is raised and the transaction is
aborted before any SQL is sent.

Usage:

    from cropchain_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent, called by init_engine_from_url
"""

from sqlalchemy import event, inspect

from cropchain_kernel.exceptions import ImmutabilityViolationError
from cropchain_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

NOTIFICATION_MUTABLE_FIELDS = frozenset({"is_read", "read_at"})


def _blocked(entity_type: str, target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_audit_event_update(mapper, connection, target):
    raise _blocked(
        "AuditEvent", target, "UPDATE", "Audit events are immutable and cannot be modified"
    )


def _check_audit_event_delete(mapper, connection, target):
    raise _blocked("AuditEvent", target, "DELETE", "Audit events cannot be deleted")


def _check_notification_update(mapper, connection, target):
    state = inspect(target)
    changed = {
        attr.key
        for attr in state.attrs
        if attr.history.has_changes()
    }
    illegal = changed - NOTIFICATION_MUTABLE_FIELDS
    if illegal:
        raise _blocked(
            "Notification",
            target,
            "UPDATE",
            f"Only the read flag may change; attempted to modify {sorted(illegal)}",
        )


def _check_notification_delete(mapper, connection, target):
    raise _blocked("Notification", target, "DELETE", "Notifications are append-only")


def _check_crop_batch_delete(mapper, connection, target):
    raise _blocked(
        "CropBatch", target, "DELETE", "Crop batches are never deleted; deactivate instead"
    )


def _check_transport_task_delete(mapper, connection, target):
    raise _blocked(
        "TransportTask", target, "DELETE", "Transport tasks are retained in terminal states"
    )


def _listeners():
    from cropchain_kernel.models.audit_event import AuditEvent
    from cropchain_kernel.models.crop_batch import CropBatch
    from cropchain_kernel.models.notification import Notification
    from cropchain_kernel.models.transport import TransportTask

    return (
        (AuditEvent, "before_update", _check_audit_event_update),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (Notification, "before_update", _check_notification_update),
        (Notification, "before_delete", _check_notification_delete),
        (CropBatch, "before_delete", _check_crop_batch_delete),
        (TransportTask, "before_delete", _check_transport_task_delete),
    )


def register_immutability_listeners() -> None:
    """Register all append-only listeners (idempotent)."""
    for target, identifier, fn in _listeners():
        if not event.contains(target, identifier, fn):
            event.listen(target, identifier, fn)
