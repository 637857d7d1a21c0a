"""
Module: cropchain_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listener).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash),
      validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Every mutating supply-chain command writes its AuditEvents in the same
transaction as the change they record.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from cropchain_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Crop batch lifecycle
    CROP_BATCH_CREATED = "crop_batch_created"
    CROP_STATUS_UPDATED = "crop_status_updated"
    BATCH_REVIEWED = "batch_reviewed"
    TRANSPORT_REQUESTED = "transport_requested"
    BATCH_RECEIVED = "batch_received"
    BATCH_STORED = "batch_stored"

    # Transport lifecycle
    TRANSPORT_SCHEDULED = "transport_scheduled"
    DRIVER_ASSIGNED = "driver_assigned"
    TRANSPORT_STATUS_UPDATED = "transport_status_updated"
    PICKUP_CONFIRMED = "pickup_confirmed"
    DELIVERY_CONFIRMED = "delivery_confirmed"
    ISSUE_REPORTED = "issue_reported"
    ISSUE_UPDATED = "issue_updated"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Each row's hash includes the previous row's hash, so rewriting any
    earlier row breaks every hash after it.  prev_hash is None only for the
    genesis event.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # e.g. "CropBatch", "TransportTask", "TransportIssue"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[AuditAction] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"
