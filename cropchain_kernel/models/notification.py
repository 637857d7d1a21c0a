"""
Module: cropchain_kernel.models.notification
Responsibility: The notification sink.  One row per recipient per event.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: only is_read and read_at change after insert, and rows
      are never deleted (ORM listener in db/immutability.py).
    - dedup_key ({event_id}:{recipient}) is unique, so redelivering an
      event cannot notify the same recipient twice.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from cropchain_kernel.db.base import Base, UUIDString
from cropchain_kernel.domain.statuses import (
    NotificationCategory,
    NotificationPriority,
    NotificationType,
)


class Notification(Base):
    __tablename__ = "notifications"

    __table_args__ = (
        Index("idx_notification_user_read", "user_id", "is_read"),
        Index("idx_notification_event", "event_id"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    type: Mapped[NotificationType] = mapped_column(String(40), nullable=False)
    category: Mapped[NotificationCategory] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # Named to avoid the reserved declarative attribute
    notification_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    priority: Mapped[NotificationPriority] = mapped_column(
        String(10),
        nullable=False,
        default=NotificationPriority.NORMAL.value,
    )

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(nullable=True)

    event_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    dedup_key: Mapped[str | None] = mapped_column(String(120), nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Notification {self.type} to {self.user_id}>"
