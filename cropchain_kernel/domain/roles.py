"""Actor roles and the verified actor handed to every command."""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    FIELD_AGENT = "field_agent"
    PROCUREMENT_OFFICER = "procurement_officer"
    WAREHOUSE_MANAGER = "warehouse_manager"
    TRANSPORT_DRIVER = "transport_driver"
    TRANSPORT_COORDINATOR = "transport_coordinator"


# Roles that act with procurement authority.
PROCUREMENT_ROLES: frozenset[Role] = frozenset(
    {Role.PROCUREMENT_OFFICER, Role.ADMIN, Role.MANAGER}
)


@dataclass(frozen=True)
class Actor:
    """A caller verified by the identity resolver.

    warehouse_id is set for warehouse managers and scopes what they may
    receive, package and store.
    """

    user_id: UUID
    role: Role
    warehouse_id: UUID | None = None
    full_name: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))
