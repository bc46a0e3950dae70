"""
Read-side data access for authorization decisions.

Answers the two questions the engine needs:
- does a user hold any global default-role assignment?
- which permissions do a user's default-role assignments grant under a
  given assignment scope?

Only assignments of type DEFAULT whose role has a permission set row
count. CUSTOM assignments are never read.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.authz.cache import RolePermissionCache, RolePermissionMap
from app.authz.catalog import AppPermission, AppRole, RoleType, TenantId, UserId
from app.authz.models import DefaultRolePermission, TenantUserRole


@dataclass(frozen=True)
class AssignmentScope:
    """Which role assignments a query considers.

    Distinct from the query's tenant context: a scope either matches
    only global assignments, or global assignments plus those of one
    tenant.
    """

    tenant_id: Optional[TenantId] = None
    include_tenant: bool = False

    @classmethod
    def global_only(cls) -> "AssignmentScope":
        return cls()

    @classmethod
    def within(cls, tenant_id: Optional[TenantId]) -> "AssignmentScope":
        """Global assignments plus those scoped to tenant_id, if any."""
        if tenant_id is None:
            return cls.global_only()
        return cls(tenant_id=tenant_id, include_tenant=True)

    def clause(self):
        if self.include_tenant:
            return or_(
                TenantUserRole.tenant_id == self.tenant_id,
                TenantUserRole.tenant_id.is_(None),
            )
        return TenantUserRole.tenant_id.is_(None)


class RoleAssignmentRepository:
    """Reads role assignments joined with default role permissions."""

    def __init__(self, db: AsyncSession, cache: Optional[RolePermissionCache] = None):
        self.db = db
        self.cache = cache

    async def _assigned_roles(self, user_id: UserId, scope: AssignmentScope) -> set[AppRole]:
        result = await self.db.execute(
            select(TenantUserRole.role)
            .where(
                TenantUserRole.user_id == user_id,
                TenantUserRole.role_type == RoleType.DEFAULT,
                scope.clause(),
            )
            .distinct()
        )
        return set(result.scalars().all())

    async def load_role_permission_map(self) -> RolePermissionMap:
        """Full role -> permission set map, served from cache when possible."""
        if self.cache is not None:
            cached = await self.cache.get()
            if cached is not None:
                return cached

        result = await self.db.execute(select(DefaultRolePermission))
        role_map = {row.role: row.permission_set for row in result.scalars().all()}

        if self.cache is not None:
            await self.cache.set(role_map)
        return role_map

    async def _matching_permission_sets(
        self,
        user_id: UserId,
        scope: AssignmentScope,
    ) -> list[frozenset[AppPermission]]:
        """Permission sets of the user's default roles that have a set row."""
        if self.cache is not None:
            roles = await self._assigned_roles(user_id, scope)
            if not roles:
                return []
            role_map = await self.load_role_permission_map()
            return [role_map[role] for role in roles if role in role_map]

        result = await self.db.execute(
            select(DefaultRolePermission)
            .join(TenantUserRole, TenantUserRole.role == DefaultRolePermission.role)
            .where(
                TenantUserRole.user_id == user_id,
                TenantUserRole.role_type == RoleType.DEFAULT,
                scope.clause(),
            )
        )
        return [row.permission_set for row in result.scalars().unique().all()]

    async def has_global_default_role(self, user_id: UserId) -> bool:
        """True when the user holds any global default role with a permission set."""
        sets = await self._matching_permission_sets(user_id, AssignmentScope.global_only())
        return bool(sets)

    async def granted_permissions(
        self,
        user_id: UserId,
        scope: AssignmentScope,
    ) -> frozenset[AppPermission]:
        """Union of permissions granted by the user's matching default roles."""
        granted: set[AppPermission] = set()
        for permission_set in await self._matching_permission_sets(user_id, scope):
            granted |= permission_set
        return frozenset(granted)

    async def user_role_summary(
        self,
        user_id: uuid.UUID,
        tenant_id: Optional[uuid.UUID] = None,
    ) -> list[TenantUserRole]:
        """Default assignments visible in a tenant context, for introspection."""
        scope = AssignmentScope.within(tenant_id)
        result = await self.db.execute(
            select(TenantUserRole)
            .where(
                TenantUserRole.user_id == user_id,
                TenantUserRole.role_type == RoleType.DEFAULT,
                scope.clause(),
            )
            .order_by(TenantUserRole.tenant_id, TenantUserRole.role)
        )
        return list(result.scalars().all())
