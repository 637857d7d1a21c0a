"""
Module: cropchain_kernel.models.warehouse
Responsibility: Destination warehouses and the actor profiles scoped to them.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from cropchain_kernel.db.base import Base, TrackedBase, UUIDString


class Warehouse(TrackedBase):
    """A receiving warehouse.

    Warehouse managers are Profiles whose warehouse_id points here; they are
    the role-scoped recipients of arrival notifications.
    """

    __tablename__ = "warehouses"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    location: Mapped[str | None] = mapped_column(String(300), nullable=True)
    capacity: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Warehouse {self.code}>"


class Profile(Base):
    """A person who can act in the supply chain.

    The identity resolver maps an authenticated token onto a Profile; the
    profile's role is what the Role Gate checks.
    """

    __tablename__ = "profiles"

    __table_args__ = (
        Index("idx_profile_role_active", "role", "is_active"),
        Index("idx_profile_warehouse", "warehouse_id"),
    )

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(40), nullable=False)
    warehouse_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Profile {self.email} role={self.role}>"
