"""
Module: cropchain_kernel.models.resources
Responsibility: ORM persistence for the scarce transport resources.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A driver is ON_DUTY (a vehicle IN_USE) exactly while it holds at least
      one committed transport task.  The ResourceScheduler maintains this;
      nothing else writes these status columns.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cropchain_kernel.db.base import TrackedBase, UUIDString
from cropchain_kernel.domain.statuses import DriverStatus, VehicleStatus, VehicleType
from cropchain_kernel.models.warehouse import Profile


class Driver(TrackedBase):
    """A transport driver; profile_id links to the person who logs in."""

    __tablename__ = "drivers"

    profile_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("profiles.id"),
        nullable=False,
        unique=True,
    )
    license_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    phone: Mapped[str | None] = mapped_column(String(40), nullable=True)
    status: Mapped[DriverStatus] = mapped_column(
        String(20),
        nullable=False,
        default=DriverStatus.AVAILABLE.value,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    profile: Mapped[Profile] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<Driver {self.license_number} status={self.status}>"


class Vehicle(TrackedBase):
    __tablename__ = "vehicles"

    plate_number: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    vehicle_type: Mapped[VehicleType] = mapped_column(
        String(30),
        nullable=False,
        default=VehicleType.TRUCK.value,
    )
    capacity: Mapped[Decimal | None] = mapped_column(nullable=True)
    status: Mapped[VehicleStatus] = mapped_column(
        String(20),
        nullable=False,
        default=VehicleStatus.AVAILABLE.value,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Vehicle {self.plate_number} status={self.status}>"
