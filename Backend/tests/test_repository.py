"""Tests for RoleAssignmentRepository and AssignmentScope."""

import json
import uuid

import fakeredis.aioredis
import pytest
import pytest_asyncio

from app.authz.cache import RolePermissionCache
from app.authz.catalog import AppPermission, AppRole, RoleType
from app.authz.engine import AuthorizationEngine
from app.authz.repository import AssignmentScope, RoleAssignmentRepository
from app.authz.service import TenantAdminService


pytestmark = pytest.mark.integration


@pytest_asyncio.fixture
async def redis_client():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def repository(seeded_db):
    return RoleAssignmentRepository(seeded_db)


@pytest.fixture
def cached_repository(seeded_db, redis_client):
    return RoleAssignmentRepository(seeded_db, RolePermissionCache(redis_client))


@pytest_asyncio.fixture
async def acme(service, carol):
    return await service.create_tenant("acme", created_by=carol)


class TestAssignmentScope:
    def test_within_none_is_global_only(self):
        assert AssignmentScope.within(None) == AssignmentScope.global_only()

    def test_within_tenant(self):
        tenant_id = uuid.uuid4()
        scope = AssignmentScope.within(tenant_id)
        assert scope.include_tenant is True
        assert scope.tenant_id == tenant_id


class TestGrantedPermissions:
    async def test_no_roles_grants_nothing(self, repository, alice):
        assert await repository.granted_permissions(alice, AssignmentScope.global_only()) == frozenset()
        assert await repository.has_global_default_role(alice) is False

    async def test_tenant_scope_includes_global_roles(self, repository, service, acme, alice):
        await service.grant_role(alice, AppRole.BASIC_USER)
        await service.add_member(acme.id, alice)
        await service.grant_role(alice, AppRole.MEMBER, tenant_id=acme.id)

        global_only = await repository.granted_permissions(alice, AssignmentScope.global_only())
        in_acme = await repository.granted_permissions(alice, AssignmentScope.within(acme.id))

        assert global_only == {AppPermission.TENANTS_CREATE}
        assert in_acme == {
            AppPermission.TENANTS_CREATE,
            AppPermission.TENANTS_READ,
            AppPermission.TENANTS_MEMBERS_VIEW,
            AppPermission.TENANTS_ROLES_VIEW,
            AppPermission.TENANTS_SETTINGS_VIEW,
        }

    async def test_tenant_roles_are_not_global(self, repository, acme, carol):
        assert await repository.has_global_default_role(carol) is False
        assert await repository.granted_permissions(carol, AssignmentScope.within(acme.id)) == {
            AppPermission.TENANTS_ALL
        }

    async def test_custom_roles_ignored(self, repository, service, alice):
        await service.grant_role(alice, AppRole.SYSTEM_ADMIN, role_type=RoleType.CUSTOM)

        assert await repository.has_global_default_role(alice) is False
        assert await repository.granted_permissions(alice, AssignmentScope.global_only()) == frozenset()


class TestUserRoleSummary:
    async def test_summary_covers_tenant_and_global(self, repository, service, acme, alice):
        await service.grant_role(alice, AppRole.BASIC_USER)
        await service.add_member(acme.id, alice)
        await service.grant_role(alice, AppRole.MEMBER, tenant_id=acme.id)

        global_roles = await repository.user_role_summary(alice)
        acme_roles = await repository.user_role_summary(alice, acme.id)

        assert [a.role for a in global_roles] == [AppRole.BASIC_USER]
        assert {a.role for a in acme_roles} == {AppRole.BASIC_USER, AppRole.MEMBER}


class TestCachedRepository:
    async def test_map_is_cached_after_first_read(self, cached_repository, redis_client):
        assert await redis_client.get("authz:role_permissions") is None

        role_map = await cached_repository.load_role_permission_map()

        assert role_map[AppRole.ADMINISTRATOR] == {AppPermission.TENANTS_ALL}
        assert await redis_client.get("authz:role_permissions") is not None
        assert await cached_repository.load_role_permission_map() == role_map

    async def test_cached_decisions_match_database(self, cached_repository, repository, service, acme, alice):
        await service.grant_role(alice, AppRole.BASIC_USER)
        cached_engine = AuthorizationEngine(cached_repository)
        plain_engine = AuthorizationEngine(repository)

        for permission in AppPermission:
            for tenant_id in (None, acme.id):
                assert await cached_engine.authorize(alice, permission, tenant_id) == await plain_engine.authorize(
                    alice, permission, tenant_id
                )

    async def test_admin_write_invalidates_cache(self, seeded_db, cached_repository, redis_client, alice):
        service = TenantAdminService(seeded_db, cached_repository.cache)
        await service.grant_role(alice, AppRole.BASIC_USER)
        engine = AuthorizationEngine(cached_repository)
        assert await engine.authorize(alice, AppPermission.TENANTS_CREATE) is True

        await service.set_role_permissions(AppRole.BASIC_USER, [AppPermission.TENANTS_READ])

        assert await redis_client.get("authz:role_permissions") is None
        assert await engine.authorize(alice, AppPermission.TENANTS_CREATE) is False
        assert await engine.authorize(alice, AppPermission.TENANTS_READ) is True

    async def test_unreadable_cache_falls_back_to_database(self, cached_repository, service, redis_client, alice):
        await service.grant_role(alice, AppRole.BASIC_USER)
        await redis_client.set("authz:role_permissions", json.dumps({"ghost_role": ["tenants.create"]}))
        engine = AuthorizationEngine(cached_repository)

        assert await engine.authorize(alice, AppPermission.TENANTS_CREATE) is True
        # Rebuilt from the database
        cached = json.loads(await redis_client.get("authz:role_permissions"))
        assert "ghost_role" not in cached
