"""
cropchain_services.identity -- Turning an opaque caller token into an Actor.

Authentication itself happens outside this package.  Commands only ever see
the Actor a resolver returns; nothing below trusts a role claimed by the
caller.
"""

from __future__ import annotations

from typing import Mapping, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from cropchain_kernel.domain.roles import Actor, Role
from cropchain_kernel.exceptions import InactiveActorError, ProfileNotFoundError
from cropchain_kernel.logging_config import get_logger
from cropchain_kernel.models.warehouse import Profile

logger = get_logger("services.identity")


@runtime_checkable
class IdentityResolver(Protocol):
    def resolve(self, token: str, session: Session | None = None) -> Actor: ...


class StaticIdentityResolver:
    """Fixed token -> Actor table, for tests and embedded use."""

    def __init__(self, actors: Mapping[str, Actor] | None = None):
        self._actors: dict[str, Actor] = dict(actors or {})

    def register(self, token: str, actor: Actor) -> None:
        self._actors[token] = actor

    def resolve(self, token: str, session: Session | None = None) -> Actor:
        try:
            return self._actors[token]
        except KeyError:
            raise ProfileNotFoundError(token) from None


class ProfileIdentityResolver:
    """Token is a profile id; the role and warehouse come from the profile row."""

    def resolve(self, token: str, session: Session | None = None) -> Actor:
        if session is None:
            raise ValueError("ProfileIdentityResolver needs a session")
        try:
            profile_id = token if isinstance(token, UUID) else UUID(str(token))
        except ValueError:
            raise ProfileNotFoundError(token) from None

        profile = session.get(Profile, profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        if not profile.is_active:
            logger.warning("inactive_actor_rejected", extra={"user_id": str(profile_id)})
            raise InactiveActorError(profile.role, profile_id)
        return Actor(
            user_id=profile.id,
            role=Role(profile.role),
            warehouse_id=profile.warehouse_id,
            full_name=profile.full_name,
        )
