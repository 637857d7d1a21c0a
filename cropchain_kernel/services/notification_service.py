"""
NotificationService -- the notification sink and its read state.

Responsibility:
    Recipient lookup by role (optionally scoped to a warehouse), idempotent
    notification inserts, and the per-user read flag.

Invariants enforced:
    - One row per dedup_key.  A key that already exists is skipped, never
      rewritten.
    - A user can only mark their own notifications as read.
"""

from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import select, update

from cropchain_kernel.domain.roles import Actor, Role
from cropchain_kernel.domain.statuses import (
    NotificationCategory,
    NotificationPriority,
    NotificationType,
)
from cropchain_kernel.exceptions import NotificationNotFoundError
from cropchain_kernel.logging_config import get_logger
from cropchain_kernel.models.notification import Notification
from cropchain_kernel.models.warehouse import Profile
from cropchain_kernel.services.base import BaseService

logger = get_logger("services.notification")


class NotificationService(BaseService):

    # -------------------------------------------------------------------------
    # Recipients
    # -------------------------------------------------------------------------

    def active_profile_ids(
        self,
        roles: Role | Iterable[Role],
        warehouse_id: UUID | None = None,
    ) -> list[UUID]:
        """Active profiles holding any of ``roles``, in a stable order."""
        if isinstance(roles, Role):
            roles = (roles,)
        stmt = select(Profile.id).where(
            Profile.role.in_([r.value for r in roles]),
            Profile.is_active.is_(True),
        )
        if warehouse_id is not None:
            stmt = stmt.where(Profile.warehouse_id == warehouse_id)
        return list(self.session.execute(stmt.order_by(Profile.email)).scalars())

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def exists(self, dedup_key: str) -> bool:
        return self.session.execute(
            select(Notification.id).where(Notification.dedup_key == dedup_key)
        ).first() is not None

    def create(
        self,
        user_id: UUID,
        type: NotificationType,
        category: NotificationCategory,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        event_id: UUID | None = None,
        dedup_key: str | None = None,
    ) -> Notification | None:
        """
        Insert one notification.  Returns None when dedup_key was already
        delivered.
        """
        if dedup_key is not None and self.exists(dedup_key):
            logger.info(
                "notification_deduplicated",
                extra={"user_id": str(user_id), "dedup_key": dedup_key},
            )
            return None

        notification = Notification(
            user_id=user_id,
            type=type.value,
            category=category.value,
            title=title,
            message=message,
            notification_metadata=metadata,
            priority=priority.value,
            is_read=False,
            event_id=event_id,
            dedup_key=dedup_key,
            created_at=self.clock.now(),
        )
        self.session.add(notification)
        self.session.flush()
        logger.info(
            "notification_created",
            extra={
                "notification_id": str(notification.id),
                "user_id": str(user_id),
                "type": type.value,
            },
        )
        return notification

    # -------------------------------------------------------------------------
    # Read state
    # -------------------------------------------------------------------------

    def for_user(self, user_id: UUID, unread_only: bool = False) -> list[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        return list(
            self.session.execute(
                stmt.order_by(Notification.created_at, Notification.id)
            ).scalars()
        )

    def mark_as_read(self, notification_id: UUID, actor: Actor) -> Notification:
        """
        Raises:
            NotificationNotFoundError: absent, or addressed to someone else.
        """
        notification = self.session.get(Notification, notification_id)
        # Another user's notification is reported as absent
        if notification is None or notification.user_id != actor.user_id:
            raise NotificationNotFoundError(notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = self.clock.now()
            self.session.flush()
        return notification

    def mark_all_as_read(self, actor: Actor) -> int:
        result = self.session.execute(
            update(Notification)
            .where(Notification.user_id == actor.user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=self.clock.now())
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "notifications_marked_read",
            extra={"user_id": str(actor.user_id), "count": result.rowcount},
        )
        return result.rowcount
