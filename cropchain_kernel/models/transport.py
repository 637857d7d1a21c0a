"""
Module: cropchain_kernel.models.transport
Responsibility: ORM persistence for transport tasks and the issues drivers
    report against them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (database level, partial unique indexes):
    - At most one active (SCHEDULED or IN_TRANSIT) task per crop batch.
    - At most one committed (active or DELAYED) task per driver per
      scheduled_date.
    - At most one committed task per vehicle per scheduled_date.
    These back the application-level checks in ResourceScheduler so that two
    coordinators racing for the same driver on the same date cannot both win.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cropchain_kernel.db.base import TrackedBase, UUIDString
from cropchain_kernel.domain.statuses import IssueStatus, IssueType, TransportTaskStatus
from cropchain_kernel.models.crop_batch import CropBatch
from cropchain_kernel.models.resources import Driver, Vehicle

_ACTIVE_SQL = "status IN ('SCHEDULED', 'IN_TRANSIT')"
_COMMITTED_SQL = "status IN ('SCHEDULED', 'IN_TRANSIT', 'DELAYED')"


def _unique_where(*columns: str, name: str, where: str) -> Index:
    return Index(
        name,
        *columns,
        unique=True,
        postgresql_where=text(where),
        sqlite_where=text(where),
    )


class TransportTask(TrackedBase):
    """
    One assignment of a driver and vehicle to move one crop batch.

    Contract:
        driver_id and vehicle_id are both set by scheduling, or both left
        empty for later assignment.  origin_batch_status remembers the batch
        status before it was flipped to SHIPPED, so a cancelled task can
        hand the batch back for rescheduling.
    """

    __tablename__ = "transport_tasks"

    __table_args__ = (
        _unique_where("crop_batch_id", name="uq_transport_task_active_batch", where=_ACTIVE_SQL),
        _unique_where(
            "driver_id", "scheduled_date", name="uq_transport_task_driver_date", where=_COMMITTED_SQL
        ),
        _unique_where(
            "vehicle_id", "scheduled_date", name="uq_transport_task_vehicle_date", where=_COMMITTED_SQL
        ),
        Index("idx_transport_task_status", "status"),
        Index("idx_transport_task_coordinator", "coordinator_id"),
    )

    crop_batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("crop_batches.id"),
        nullable=False,
    )
    driver_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("drivers.id"),
        nullable=True,
    )
    vehicle_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("vehicles.id"),
        nullable=True,
    )
    coordinator_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("profiles.id"),
        nullable=False,
    )

    status: Mapped[TransportTaskStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TransportTaskStatus.SCHEDULED.value,
    )
    origin_batch_status: Mapped[str] = mapped_column(String(30), nullable=False)

    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    pickup_location: Mapped[str] = mapped_column(String(300), nullable=False)
    delivery_location: Mapped[str] = mapped_column(String(300), nullable=False)
    actual_pickup_date: Mapped[datetime | None] = mapped_column(nullable=True)
    actual_delivery_date: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    crop_batch: Mapped[CropBatch] = relationship(lazy="joined")
    driver: Mapped[Driver | None] = relationship(lazy="joined")
    vehicle: Mapped[Vehicle | None] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<TransportTask {self.id} status={self.status} date={self.scheduled_date}>"

    @property
    def current_status(self) -> TransportTaskStatus:
        return TransportTaskStatus(self.status)


class TransportIssue(TrackedBase):
    """A problem reported against a transport task."""

    __tablename__ = "transport_issues"

    __table_args__ = (
        Index("idx_transport_issue_task", "transport_task_id"),
        Index("idx_transport_issue_status", "status"),
    )

    transport_task_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transport_tasks.id"),
        nullable=False,
    )
    reported_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    issue_type: Mapped[IssueType] = mapped_column(String(30), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str | None] = mapped_column(String(300), nullable=True)
    status: Mapped[IssueStatus] = mapped_column(
        String(20),
        nullable=False,
        default=IssueStatus.OPEN.value,
    )
    resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    transport_task: Mapped[TransportTask] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<TransportIssue {self.issue_type} status={self.status}>"
