"""
Authorization decision engine.

Answers whether a user may exercise a permission, optionally inside a
tenant. Resolution cases, in priority order:

1. tenants.create: only global roles can apply, since no tenant-scoped
   role exists before the tenant does. First confirm the user holds a
   global default role, then that those roles grant tenants.all or
   tenants.create.
2. system.*: only global roles, whatever tenant was passed. Allowed by
   system.all or the exact permission.
3. Everything else: roles scoped to the given tenant plus global roles.
   Allowed by tenants.all or the exact permission.

The engine never writes. Store failures raise AuthzDataAccessError and
unknown permission strings raise UnknownPermissionError; a plain False
always means "not allowed".
"""

from typing import Union

import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.authz.catalog import AppPermission, TenantContext, UserId, parse_permission
from app.authz.errors import AuthzDataAccessError
from app.authz.repository import AssignmentScope, RoleAssignmentRepository

logger = structlog.get_logger(__name__)


class AuthorizationEngine:
    """
    Stateless permission resolver over a RoleAssignmentRepository.

    The repository must be backed by the engine's own data-access
    credential, never by the caller's.
    """

    def __init__(self, repository: RoleAssignmentRepository):
        self.repository = repository

    async def authorize(
        self,
        user_id: UserId,
        requested_permission: Union[AppPermission, str],
        tenant_id: TenantContext = None,
    ) -> bool:
        """
        Check whether user_id holds requested_permission.

        Args:
            user_id: Authenticated caller id
            requested_permission: Catalog permission (or its string value)
            tenant_id: Tenant context, None for no tenant

        Returns:
            True if allowed, False otherwise

        Raises:
            UnknownPermissionError: permission is not in the catalog
            AuthzDataAccessError: the store could not be read
        """
        permission = parse_permission(requested_permission)
        log = logger.bind(
            user_id=str(user_id),
            permission=permission.value,
            tenant_id=str(tenant_id) if tenant_id else None,
        )
        log.debug("authorise start")

        try:
            if permission is AppPermission.TENANTS_CREATE:
                allowed = await self._authorize_tenant_creation(user_id, log)
                case = "bootstrap"
            elif permission.is_system:
                allowed = await self._authorize_in_scope(
                    user_id, permission, AssignmentScope.global_only()
                )
                case = "system"
            else:
                allowed = await self._authorize_in_scope(
                    user_id, permission, AssignmentScope.within(tenant_id)
                )
                case = "tenant"
        except (SQLAlchemyError, OSError) as e:
            log.error("authorise failed", error=str(e))
            raise AuthzDataAccessError(f"Could not resolve permission {permission.value}") from e

        log.debug("authorise done", case=case, allowed=allowed)
        return allowed

    async def _authorize_tenant_creation(self, user_id: UserId, log) -> bool:
        has_role = await self.repository.has_global_default_role(user_id)
        log.debug("Found matching role", has_role=has_role)
        if not has_role:
            return False

        allowed = await self._authorize_in_scope(
            user_id, AppPermission.TENANTS_CREATE, AssignmentScope.global_only()
        )
        log.debug("Found matching permission", allowed=allowed)
        return allowed

    async def _authorize_in_scope(
        self,
        user_id: UserId,
        permission: AppPermission,
        scope: AssignmentScope,
    ) -> bool:
        granted = await self.repository.granted_permissions(user_id, scope)
        return not granted.isdisjoint({permission.wildcard, permission})

    async def authorize_any(
        self,
        user_id: UserId,
        permissions: list[Union[AppPermission, str]],
        tenant_id: TenantContext = None,
    ) -> bool:
        """True if any of the permissions is allowed."""
        for permission in permissions:
            if await self.authorize(user_id, permission, tenant_id):
                return True
        return False

    async def authorize_all(
        self,
        user_id: UserId,
        permissions: list[Union[AppPermission, str]],
        tenant_id: TenantContext = None,
    ) -> bool:
        """True only if every permission is allowed."""
        for permission in permissions:
            if not await self.authorize(user_id, permission, tenant_id):
                return False
        return True
