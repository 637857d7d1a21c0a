"""Identity resolvers: the caller's token decides the Actor, never a claimed role."""

from uuid import uuid4

import pytest
from sqlalchemy import update

from cropchain_kernel.domain.roles import Actor, Role
from cropchain_kernel.exceptions import InactiveActorError, ProfileNotFoundError, UnauthorizedError
from cropchain_kernel.models import Profile
from cropchain_services import ProfileIdentityResolver, StaticIdentityResolver, SupplyChainCommands


class TestStaticResolver:

    def test_known_token(self, world):
        resolver = StaticIdentityResolver(world.actors)
        assert resolver.resolve("coordinator") == world.actor("coordinator")

    def test_unknown_token(self):
        with pytest.raises(ProfileNotFoundError):
            StaticIdentityResolver().resolve("nobody")

    def test_register(self):
        resolver = StaticIdentityResolver()
        actor = Actor(user_id=uuid4(), role=Role.ADMIN)
        resolver.register("ops", actor)
        assert resolver.resolve("ops") is actor


class TestProfileResolver:

    def test_role_and_warehouse_come_from_profile(self, session, world):
        actor = ProfileIdentityResolver().resolve(str(world.user("manager")), session)
        assert actor.role is Role.WAREHOUSE_MANAGER
        assert actor.warehouse_id == world.warehouse_id
        assert actor.full_name == "Mina Manager"

    @pytest.mark.parametrize("token", ["not-a-uuid", str(uuid4())])
    def test_unknown_profile(self, session, token):
        with pytest.raises(ProfileNotFoundError):
            ProfileIdentityResolver().resolve(token, session)

    def test_inactive_profile(self, session, world):
        session.execute(
            update(Profile).where(Profile.id == world.user("field")).values(is_active=False)
        )
        with pytest.raises(InactiveActorError) as exc_info:
            ProfileIdentityResolver().resolve(str(world.user("field")), session)
        assert isinstance(exc_info.value, UnauthorizedError)
        assert exc_info.value.code == "INACTIVE_ACTOR"

    def test_session_required(self, world):
        with pytest.raises(ValueError):
            ProfileIdentityResolver().resolve(str(world.user("field")))

    def test_drives_commands(self, session_factory, clock, world):
        commands = SupplyChainCommands(session_factory, ProfileIdentityResolver(), clock)
        result = commands.create_crop_batch(str(world.user("field")), world.farm_id, "Rice", "250")
        assert result.batch_code == "CB-2025-001"

        with pytest.raises(UnauthorizedError):
            commands.create_crop_batch(str(world.user("driver_a")), world.farm_id, "Rice", "250")
