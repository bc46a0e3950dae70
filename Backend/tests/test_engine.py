"""Tests for AuthorizationEngine decisions against a seeded SQLite store."""

import uuid
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from app.authz.catalog import SYSTEM_PERMISSIONS, TENANT_PERMISSIONS, AppPermission, AppRole, RoleType
from app.authz.engine import AuthorizationEngine
from app.authz.errors import AuthzDataAccessError, UnknownPermissionError


pytestmark = pytest.mark.integration

# tenants.create is decided by global roles only, never by tenant wildcards
TENANT_SCOPED = sorted(TENANT_PERMISSIONS - {AppPermission.TENANTS_CREATE})


@pytest_asyncio.fixture
async def acme(service, carol):
    """Tenant 'acme' created by carol, who becomes its administrator."""
    return await service.create_tenant("acme", created_by=carol, display_name="Acme")


@pytest_asyncio.fixture
async def globex(service, bob):
    return await service.create_tenant("globex", created_by=bob, display_name="Globex")


# ============================================================================
# Wildcards and namespaces
# ============================================================================


class TestWildcards:
    async def test_tenants_all_subsumes_every_tenant_permission(self, engine, acme, carol):
        for permission in TENANT_SCOPED:
            assert await engine.authorize(carol, permission, acme.id) is True, permission

    async def test_tenant_wildcard_does_not_leak_into_other_tenants(self, engine, acme, globex, carol):
        assert await engine.authorize(carol, AppPermission.TENANTS_READ, globex.id) is False
        assert await engine.authorize(carol, AppPermission.TENANTS_READ) is False

    async def test_tenants_all_denies_system_permissions(self, engine, acme, carol):
        for permission in SYSTEM_PERMISSIONS:
            assert await engine.authorize(carol, permission, acme.id) is False, permission
            assert await engine.authorize(carol, permission) is False, permission

    async def test_system_all_denies_tenant_permissions(self, engine, service, acme, alice):
        await service.grant_role(alice, AppRole.SYSTEM_ADMIN)

        for permission in TENANT_PERMISSIONS:
            assert await engine.authorize(alice, permission, acme.id) is False, permission
            assert await engine.authorize(alice, permission) is False, permission

    async def test_system_all_subsumes_system_permissions(self, engine, service, acme, alice):
        await service.grant_role(alice, AppRole.SYSTEM_ADMIN)

        for permission in SYSTEM_PERMISSIONS:
            assert await engine.authorize(alice, permission) is True
            # The tenant argument is ignored for system permissions
            assert await engine.authorize(alice, permission, acme.id) is True


# ============================================================================
# Scope resolution
# ============================================================================


class TestScopes:
    async def test_global_role_applies_in_every_tenant(self, engine, service, acme, globex, alice):
        await service.grant_role(alice, AppRole.MEMBER)

        # No membership rows for alice anywhere
        assert await service.list_tenants_for_user(alice) == []
        for tenant in (acme, globex):
            assert await engine.authorize(alice, AppPermission.TENANTS_MEMBERS_VIEW, tenant.id) is True
        assert await engine.authorize(alice, AppPermission.TENANTS_MEMBERS_VIEW) is True
        assert await engine.authorize(alice, AppPermission.TENANTS_UPDATE, acme.id) is False

    async def test_tenant_role_needs_matching_tenant(self, engine, service, acme, alice):
        await service.add_member(acme.id, alice)
        await service.grant_role(alice, AppRole.MEMBER, tenant_id=acme.id)

        assert await engine.authorize(alice, AppPermission.TENANTS_READ, acme.id) is True
        assert await engine.authorize(alice, AppPermission.TENANTS_READ) is False
        assert await engine.authorize(alice, AppPermission.TENANTS_READ, uuid.uuid4()) is False

    async def test_tenant_scoped_system_role_grants_nothing(self, engine, service, acme, alice):
        await service.add_member(acme.id, alice)
        await service.grant_role(alice, AppRole.SYSTEM_ADMIN, tenant_id=acme.id)

        assert await engine.authorize(alice, AppPermission.SYSTEM_USERS_MANAGE, acme.id) is False
        assert await engine.authorize(alice, AppPermission.SYSTEM_ALL) is False

    async def test_permissions_union_across_roles(self, engine, service, acme, alice):
        await service.set_role_permissions(AppRole.BASIC_USER, [AppPermission.TENANTS_AUDIT_VIEW])
        await service.add_member(acme.id, alice)
        await service.grant_role(alice, AppRole.BASIC_USER)
        await service.grant_role(alice, AppRole.MEMBER, tenant_id=acme.id)

        assert await engine.authorize(alice, AppPermission.TENANTS_AUDIT_VIEW, acme.id) is True
        assert await engine.authorize(alice, AppPermission.TENANTS_SETTINGS_VIEW, acme.id) is True
        assert await engine.authorize(alice, AppPermission.TENANTS_SETTINGS_EDIT, acme.id) is False


# ============================================================================
# Tenant creation
# ============================================================================


class TestTenantCreation:
    async def test_no_assignments_denies(self, engine, alice):
        assert await engine.authorize(alice, AppPermission.TENANTS_CREATE) is False

    async def test_basic_user_may_create(self, engine, service, alice):
        await service.grant_role(alice, AppRole.BASIC_USER)
        assert await engine.authorize(alice, AppPermission.TENANTS_CREATE) is True

    async def test_global_role_without_create_denies(self, engine, service, alice):
        await service.grant_role(alice, AppRole.MEMBER)
        assert await engine.authorize(alice, AppPermission.TENANTS_CREATE) is False

    async def test_global_tenants_all_allows(self, engine, service, alice):
        await service.grant_role(alice, AppRole.ADMINISTRATOR)
        assert await engine.authorize(alice, AppPermission.TENANTS_CREATE) is True

    async def test_tenant_scoped_administrator_cannot_create(self, engine, acme, carol):
        assert await engine.authorize(carol, AppPermission.TENANTS_CREATE) is False
        assert await engine.authorize(carol, AppPermission.TENANTS_CREATE, acme.id) is False

    async def test_role_without_permission_set_does_not_count(self, engine, service, alice):
        await service.grant_role(alice, AppRole.BASIC_USER)
        await service.delete_role_permissions(AppRole.BASIC_USER)

        assert await engine.repository.has_global_default_role(alice) is False
        assert await engine.authorize(alice, AppPermission.TENANTS_CREATE) is False


# ============================================================================
# Custom roles
# ============================================================================


class TestCustomRoles:
    async def test_custom_assignments_are_invisible(self, engine, service, acme, alice):
        await service.add_member(acme.id, alice)
        await service.grant_role(alice, AppRole.ADMINISTRATOR, tenant_id=acme.id, role_type=RoleType.CUSTOM)
        await service.grant_role(alice, AppRole.SYSTEM_ADMIN, role_type=RoleType.CUSTOM)
        await service.grant_role(alice, AppRole.BASIC_USER, role_type=RoleType.CUSTOM)

        for permission in AppPermission:
            assert await engine.authorize(alice, permission, acme.id) is False, permission
            assert await engine.authorize(alice, permission) is False, permission


# ============================================================================
# Scenarios
# ============================================================================


class TestScenarios:
    async def test_tenant_moderator_in_acme(self, engine, service, acme, globex, alice):
        await service.set_role_permissions(
            AppRole.TENANT_MODERATOR,
            [AppPermission.TENANTS_MEMBERS_VIEW, AppPermission.TENANTS_MEMBERS_INVITE],
        )
        await service.add_member(acme.id, alice)
        await service.grant_role(alice, AppRole.TENANT_MODERATOR, tenant_id=acme.id)

        assert await engine.authorize(alice, AppPermission.TENANTS_MEMBERS_INVITE, acme.id) is True
        assert await engine.authorize(alice, AppPermission.TENANTS_MEMBERS_INVITE, globex.id) is False
        assert await engine.authorize(alice, AppPermission.TENANTS_ROLES_DELETE, acme.id) is False
        assert await engine.authorize(alice, AppPermission.TENANTS_CREATE) is False

    async def test_global_system_admin(self, engine, service, acme, globex, alice):
        await service.grant_role(alice, AppRole.SYSTEM_ADMIN)

        assert await engine.authorize(alice, AppPermission.SYSTEM_USERS_MANAGE) is True
        for tenant in (acme, globex):
            assert await engine.authorize(alice, AppPermission.TENANTS_DELETE, tenant.id) is False


# ============================================================================
# Input and failure handling
# ============================================================================


class TestEngineContract:
    async def test_accepts_permission_strings(self, engine, service, alice):
        await service.grant_role(alice, AppRole.BASIC_USER)
        assert await engine.authorize(alice, "tenants.create") is True

    async def test_unknown_permission_raises(self, engine, alice):
        with pytest.raises(UnknownPermissionError):
            await engine.authorize(alice, "tenants.teleport")

    async def test_decisions_are_deterministic(self, engine, service, acme, alice, carol):
        await service.grant_role(alice, AppRole.MEMBER)
        checks = [
            (alice, AppPermission.TENANTS_READ, acme.id),
            (alice, AppPermission.TENANTS_DELETE, acme.id),
            (carol, AppPermission.TENANTS_DELETE, acme.id),
            (carol, AppPermission.SYSTEM_ALL, None),
        ]

        first = [await engine.authorize(*check) for check in checks]
        for _ in range(3):
            assert [await engine.authorize(*check) for check in checks] == first
        assert first == [True, False, True, False]

    async def test_authorize_any_and_all(self, engine, service, alice):
        await service.grant_role(alice, AppRole.MEMBER)
        permissions = [AppPermission.TENANTS_READ, AppPermission.TENANTS_DELETE]

        assert await engine.authorize_any(alice, permissions) is True
        assert await engine.authorize_all(alice, permissions) is False
        assert await engine.authorize_all(alice, permissions[:1]) is True

    @pytest.mark.unit
    async def test_store_failure_raises_data_access_error(self, alice):
        repository = AsyncMock()
        repository.granted_permissions.side_effect = OperationalError("SELECT 1", {}, Exception("down"))
        engine = AuthorizationEngine(repository)

        with pytest.raises(AuthzDataAccessError):
            await engine.authorize(alice, AppPermission.TENANTS_READ, uuid.uuid4())

    @pytest.mark.unit
    async def test_bootstrap_failure_raises_data_access_error(self, alice):
        repository = AsyncMock()
        repository.has_global_default_role.side_effect = OperationalError("SELECT 1", {}, Exception("down"))
        engine = AuthorizationEngine(repository)

        with pytest.raises(AuthzDataAccessError):
            await engine.authorize(alice, AppPermission.TENANTS_CREATE)

    @pytest.mark.unit
    async def test_connection_failure_raises_data_access_error(self, alice):
        repository = AsyncMock()
        repository.granted_permissions.side_effect = ConnectionRefusedError("connect call failed")
        engine = AuthorizationEngine(repository)

        with pytest.raises(AuthzDataAccessError):
            await engine.authorize(alice, AppPermission.SYSTEM_USERS_MANAGE)

    @pytest.mark.unit
    async def test_engine_does_not_write(self, alice):
        repository = AsyncMock()
        repository.granted_permissions.return_value = frozenset({AppPermission.TENANTS_ALL})
        engine = AuthorizationEngine(repository)

        assert await engine.authorize(alice, AppPermission.TENANTS_READ, uuid.uuid4()) is True
        called = {name for name, _args, _kwargs in repository.mock_calls}
        assert called == {"granted_permissions"}
