"""
cropchain_services.notification_dispatcher -- Domain events to notifications.

Responsibility:
    Turns the domain events a committed command left behind into one
    notification per recipient.  Recipients are resolved at dispatch time:
    active profiles by role (optionally scoped to a warehouse) plus the
    explicit users an event names.

Architecture position:
    Services layer.  Runs in its own session after the primary transaction
    has committed, so nothing here can undo a state change.  The command
    facade catches whatever this raises.

Invariants enforced:
    - dedup_key is ``{event_id}:{recipient}``; redelivering an event cannot
      notify the same recipient twice.
    - Every notification carries batchId and batchCode metadata, plus taskId
      for transport events.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from cropchain_kernel.domain.clock import Clock
from cropchain_kernel.domain.events import (
    BatchStatusChanged,
    DeliveryConfirmed,
    DomainEvent,
    DriverAssigned,
    HarvestDue,
    IssueReported,
    PickupConfirmed,
    TransportRequested,
    TransportScheduled,
)
from cropchain_kernel.domain.roles import Role
from cropchain_kernel.domain.statuses import (
    CropBatchStatus,
    NotificationCategory,
    NotificationPriority,
    NotificationType,
)
from cropchain_kernel.logging_config import get_logger
from cropchain_kernel.services.notification_service import NotificationService

logger = get_logger("services.notification_dispatcher")


@dataclass(frozen=True)
class NotificationDraft:
    """One message addressed to a list of recipients."""

    recipients: tuple[UUID, ...]
    type: NotificationType
    category: NotificationCategory
    title: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    priority: NotificationPriority = NotificationPriority.NORMAL


def _humanize(status: str) -> str:
    return status.replace("_", " ").lower()


def _batch_meta(event: Any, **extra: Any) -> dict[str, Any]:
    meta: dict[str, Any] = {"batchId": str(event.batch_id), "batchCode": event.batch_code}
    task_id = getattr(event, "task_id", None)
    if task_id is not None:
        meta["taskId"] = str(task_id)
    meta.update({k: (str(v) if isinstance(v, UUID) else v) for k, v in extra.items()})
    return meta


class NotificationDispatcher:
    """
    Turns committed domain events into notification rows.

    Contract:
        Each event type maps to one handler that drafts messages for its
        recipients.  Rows carry a dedup key, so dispatching the same event
        twice writes nothing new.  Runs in its own session after the
        command has committed.

    Usage:
        with session_scope(factory) as session:
            NotificationDispatcher(session, clock).dispatch(events)
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.notifications = NotificationService(session, clock)
        self._handlers: dict[type, Callable[[Any], list[NotificationDraft]]] = {
            BatchStatusChanged: self._batch_status_changed,
            TransportRequested: self._transport_requested,
            TransportScheduled: self._transport_scheduled,
            DriverAssigned: self._driver_assigned,
            PickupConfirmed: self._pickup_confirmed,
            DeliveryConfirmed: self._delivery_confirmed,
            IssueReported: self._issue_reported,
            HarvestDue: self._harvest_due,
        }

    def dispatch(self, events: Iterable[DomainEvent]) -> int:
        """Write notifications for events.  Returns how many rows were written."""
        written = 0
        for event in events:
            handler = self._handlers.get(type(event))
            if handler is None:
                logger.debug("event_without_notifications", extra={"event_type": type(event).__name__})
                continue
            for draft in handler(event):
                written += self._deliver(event, draft)
        return written

    def _deliver(self, event: DomainEvent, draft: NotificationDraft) -> int:
        scope = getattr(event, "dedup_scope", "") or str(event.event_id)
        written = 0
        seen: set[UUID] = set()
        for user_id in draft.recipients:
            if user_id is None or user_id in seen:
                continue
            seen.add(user_id)
            created = self.notifications.create(
                user_id=user_id,
                type=draft.type,
                category=draft.category,
                title=draft.title,
                message=draft.message,
                metadata=draft.metadata,
                priority=draft.priority,
                event_id=event.event_id,
                dedup_key=f"{scope}:{user_id}",
            )
            if created is not None:
                written += 1
        logger.info(
            "notifications_dispatched",
            extra={
                "event_type": type(event).__name__,
                "notification_type": draft.type.value,
                "recipient_count": len(seen),
                "written": written,
            },
        )
        return written

    # -------------------------------------------------------------------------
    # Recipients
    # -------------------------------------------------------------------------

    def _procurement(self) -> tuple[UUID, ...]:
        return tuple(self.notifications.active_profile_ids(Role.PROCUREMENT_OFFICER))

    def _warehouse_managers(self, warehouse_id: UUID | None) -> tuple[UUID, ...]:
        if warehouse_id is None:
            return ()
        return tuple(
            self.notifications.active_profile_ids(Role.WAREHOUSE_MANAGER, warehouse_id)
        )

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def _batch_status_changed(self, event: BatchStatusChanged) -> list[NotificationDraft]:
        # SHIPPED is announced by TransportScheduled
        if event.new_status == CropBatchStatus.READY_FOR_HARVEST.value:
            kind, category, title = (
                NotificationType.HARVEST_READY,
                NotificationCategory.CROP_MANAGEMENT,
                "Crop batch ready for harvest",
            )
        elif event.new_status == CropBatchStatus.PROCESSED.value:
            kind, category, title = (
                NotificationType.BATCH_PROCESSED,
                NotificationCategory.PROCUREMENT,
                "Crop batch processed",
            )
        else:
            return []

        message = f"Crop batch {event.batch_code} is now {_humanize(event.new_status)}."
        if event.notes:
            message = f"{message} Status notes: {event.notes}"
        return [
            NotificationDraft(
                recipients=self._procurement(),
                type=kind,
                category=category,
                title=title,
                message=message,
                metadata=_batch_meta(
                    event,
                    previousStatus=event.previous_status,
                    newStatus=event.new_status,
                ),
            )
        ]

    def _transport_requested(self, event: TransportRequested) -> list[NotificationDraft]:
        meta = _batch_meta(event, warehouseId=event.warehouse_id)
        return [
            NotificationDraft(
                recipients=(event.coordinator_id,),
                type=NotificationType.TRANSPORT_REQUESTED,
                category=NotificationCategory.TRANSPORT,
                title="New transport request",
                message=(
                    f"New transport request: Batch {event.batch_code} assigned to warehouse "
                    f"{event.warehouse_name} ({event.warehouse_code}). Please schedule transport."
                ),
                metadata=meta,
            ),
            NotificationDraft(
                recipients=self._warehouse_managers(event.warehouse_id),
                type=NotificationType.TRANSPORT_REQUESTED,
                category=NotificationCategory.WAREHOUSE,
                title="Incoming shipment",
                message=(
                    f"Incoming shipment: Batch {event.batch_code} is assigned to your warehouse "
                    f"({event.warehouse_name}). Awaiting scheduling and delivery."
                ),
                metadata=meta,
            ),
        ]

    def _transport_scheduled(self, event: TransportScheduled) -> list[NotificationDraft]:
        when = event.scheduled_date.isoformat()
        meta = _batch_meta(event, scheduledDate=when, warehouseId=event.warehouse_id)
        drafts = [
            NotificationDraft(
                recipients=self._warehouse_managers(event.warehouse_id),
                type=NotificationType.SHIPMENT_ARRIVING,
                category=NotificationCategory.WAREHOUSE,
                title="Shipment scheduled",
                message=(
                    f"Batch {event.batch_code} is scheduled for delivery to your warehouse "
                    f"on {when}."
                ),
                metadata=meta,
            ),
            NotificationDraft(
                recipients=(event.coordinator_id,),
                type=NotificationType.TASK_SCHEDULED,
                category=NotificationCategory.TRANSPORT,
                title="Transport scheduled",
                message=(
                    f"Transport for batch {event.batch_code} scheduled on {when} from "
                    f"{event.pickup_location} to {event.delivery_location}."
                ),
                metadata=meta,
            ),
        ]
        if event.driver_user_id is not None:
            drafts.append(
                NotificationDraft(
                    recipients=(event.driver_user_id,),
                    type=NotificationType.TASK_ASSIGNED,
                    category=NotificationCategory.TRANSPORT,
                    title="New transport task assigned",
                    message=(
                        f"You have been assigned to transport crop batch {event.batch_code} "
                        f"from {event.pickup_location} to {event.delivery_location}. "
                        f"Scheduled for {when}."
                    ),
                    metadata=meta,
                )
            )
        return drafts

    def _driver_assigned(self, event: DriverAssigned) -> list[NotificationDraft]:
        if event.driver_user_id is None:
            return []
        when = event.scheduled_date.isoformat()
        return [
            NotificationDraft(
                recipients=(event.driver_user_id,),
                type=NotificationType.TASK_ASSIGNED,
                category=NotificationCategory.TRANSPORT,
                title="New transport task assigned",
                message=(
                    f"You have been assigned to transport crop batch {event.batch_code}. "
                    f"Scheduled for {when}."
                ),
                metadata=_batch_meta(event, scheduledDate=when),
            )
        ]

    def _pickup_confirmed(self, event: PickupConfirmed) -> list[NotificationDraft]:
        meta = _batch_meta(event, warehouseId=event.warehouse_id)
        by = f" by {event.driver_name}" if event.driver_name else ""
        return [
            NotificationDraft(
                recipients=(event.coordinator_id,) + self._procurement(),
                type=NotificationType.PICKUP_READY,
                category=NotificationCategory.TRANSPORT,
                title="Pickup confirmed",
                message=f"Batch {event.batch_code} picked up{by}. Destination: assigned warehouse.",
                metadata=meta,
            ),
            NotificationDraft(
                recipients=self._warehouse_managers(event.warehouse_id),
                type=NotificationType.SHIPMENT_ARRIVING,
                category=NotificationCategory.WAREHOUSE,
                title="Batch picked up",
                message=(
                    f"Batch {event.batch_code} has been picked up and is on its way "
                    f"to your warehouse."
                ),
                metadata=meta,
            ),
        ]

    def _delivery_confirmed(self, event: DeliveryConfirmed) -> list[NotificationDraft]:
        meta = _batch_meta(event, warehouseId=event.warehouse_id)
        by = f" by {event.driver_name}" if event.driver_name else ""
        return [
            NotificationDraft(
                recipients=(event.coordinator_id,),
                type=NotificationType.DELIVERY_CONFIRMED,
                category=NotificationCategory.TRANSPORT,
                title="Delivery confirmed",
                message=f"Batch {event.batch_code} delivered{by}.",
                metadata=meta,
            ),
            NotificationDraft(
                recipients=self._warehouse_managers(event.warehouse_id),
                type=NotificationType.BATCH_RECEIVED,
                category=NotificationCategory.WAREHOUSE,
                title="Batch delivered",
                message=(
                    f"Batch {event.batch_code} has been delivered to your warehouse. "
                    f"Please scan and confirm receipt."
                ),
                metadata=meta,
            ),
        ]

    def _issue_reported(self, event: IssueReported) -> list[NotificationDraft]:
        message = (
            f"{_humanize(event.issue_type).capitalize()} reported for batch "
            f"{event.batch_code}: {event.description}"
        )
        if event.task_delayed:
            message = f"{message} The task is now delayed."
        return [
            NotificationDraft(
                recipients=(event.coordinator_id,),
                type=NotificationType.ISSUE_REPORTED,
                category=NotificationCategory.TRANSPORT,
                title="Transport issue reported",
                message=message,
                metadata=_batch_meta(
                    event,
                    issueId=event.issue_id,
                    issueType=event.issue_type,
                    taskDelayed=event.task_delayed,
                ),
                priority=NotificationPriority.HIGH,
            )
        ]

    def _harvest_due(self, event: HarvestDue) -> list[NotificationDraft]:
        when = event.expected_harvest.isoformat()
        return [
            NotificationDraft(
                recipients=(event.recipient_id,),
                type=NotificationType.HARVEST_READY,
                category=NotificationCategory.CROP_MANAGEMENT,
                title="Harvest due",
                message=(
                    f"Crop batch {event.batch_code} ({event.crop_type}) is expected to be "
                    f"harvested on {when}."
                ),
                metadata=_batch_meta(event, expectedHarvest=when),
            )
        ]
