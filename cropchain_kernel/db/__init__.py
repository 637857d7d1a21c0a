"""Database layer - engine, base classes and persistence guards."""

from cropchain_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from cropchain_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
