"""
Module: cropchain_kernel.models.crop_batch
Responsibility: ORM persistence for farms and the crop batches grown on them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - batch_code and qr_code are unique.
    - status is a CropBatchStatus value and only changes through
      CropBatchService (conditional UPDATE keyed on the prior status).
    - version increments on every status change.
    - Crop batches are never deleted (ORM listener).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cropchain_kernel.db.base import TrackedBase, UUIDString
from cropchain_kernel.domain.statuses import CropBatchStatus
from cropchain_kernel.models.warehouse import Warehouse


class Farm(TrackedBase):
    """A farm owned by a farmer and worked by field agents."""

    __tablename__ = "farms"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    location: Mapped[str | None] = mapped_column(String(300), nullable=True)
    farmer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    owner_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Farm {self.name}>"


class CropBatch(TrackedBase):
    """
    A trackable unit of produce moving through the supply chain.

    Contract:
        created_by_id is the field agent who registered the batch; harvest
        reminders go to them.  warehouse_id and coordinator_id are set by the
        procurement transport request and are prerequisites for SHIPPED.
    """

    __tablename__ = "crop_batches"

    __table_args__ = (
        Index("idx_crop_batch_status", "status"),
        Index("idx_crop_batch_farm", "farm_id"),
        Index("idx_crop_batch_warehouse", "warehouse_id"),
        Index("idx_crop_batch_expected_harvest", "expected_harvest"),
    )

    batch_code: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    qr_code: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)

    crop_type: Mapped[str] = mapped_column(String(100), nullable=False)
    variety: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="kg")

    planting_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expected_harvest: Mapped[date | None] = mapped_column(Date, nullable=True)
    actual_harvest: Mapped[datetime | None] = mapped_column(nullable=True)

    status: Mapped[CropBatchStatus] = mapped_column(
        String(30),
        nullable=False,
        default=CropBatchStatus.PLANTED.value,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    farm_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("farms.id"),
        nullable=False,
    )
    warehouse_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=True,
    )
    coordinator_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("profiles.id"),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    farm: Mapped[Farm] = relationship(lazy="joined")
    warehouse: Mapped[Warehouse | None] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<CropBatch {self.batch_code} status={self.status}>"

    @property
    def current_status(self) -> CropBatchStatus:
        return CropBatchStatus(self.status)
