"""
Authorization dependencies for FastAPI.

Maps engine decisions to HTTP: a denial becomes 403, a store failure
propagates as AuthzDataAccessError (handled as 503 in app.main).
"""

import uuid
from typing import Annotated, Optional, Union

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.authz.cache import RolePermissionCache
from app.authz.catalog import AppPermission, parse_permission
from app.authz.engine import AuthorizationEngine
from app.authz.repository import RoleAssignmentRepository
from app.authz.service import TenantAdminService
from app.core.config import settings
from app.core.database import get_authz_db, get_db
from app.core.dependencies import CurrentUserIdDep, RedisDep


# ============================================================================
# Cache / Engine / Service Dependencies
# ============================================================================


async def get_role_permission_cache(redis: RedisDep) -> Optional[RolePermissionCache]:
    """Get the role permission cache, or None when caching is off."""
    if redis is None or not settings.authz.cache_enabled:
        return None
    return RolePermissionCache(redis, ttl=settings.authz.cache_ttl, key=settings.authz.cache_key)


RolePermissionCacheDep = Annotated[Optional[RolePermissionCache], Depends(get_role_permission_cache)]


async def get_authz_engine(
    db: Annotated[AsyncSession, Depends(get_authz_db)],
    cache: RolePermissionCacheDep,
) -> AuthorizationEngine:
    """Get an engine bound to the authorization credential."""
    return AuthorizationEngine(RoleAssignmentRepository(db, cache))


AuthzEngineDep = Annotated[AuthorizationEngine, Depends(get_authz_engine)]


async def get_tenant_admin_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: RolePermissionCacheDep,
) -> TenantAdminService:
    """Get tenant administration service instance."""
    return TenantAdminService(db, cache, signup_role=settings.authz.signup_default_role)


TenantAdminServiceDep = Annotated[TenantAdminService, Depends(get_tenant_admin_service)]


# ============================================================================
# Permission Checking Dependencies
# ============================================================================


def _tenant_from_path(request: Request, tenant_param: Optional[str]) -> Optional[uuid.UUID]:
    if tenant_param is None:
        return None
    raw = request.path_params.get(tenant_param)
    if raw is None:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tenant '{raw}' not found",
        ) from None


class RequirePermission:
    """
    Dependency class for requiring a specific permission.

    The tenant context is read from the named path parameter, if any.

    Usage:
        @router.get(
            "/tenants/{tenant_id}/members",
            dependencies=[Depends(RequirePermission(AppPermission.TENANTS_MEMBERS_VIEW))],
        )
        async def list_members(tenant_id: uuid.UUID):
            ...
    """

    def __init__(
        self,
        permission: Union[AppPermission, str],
        tenant_param: Optional[str] = "tenant_id",
    ):
        """
        Initialize permission requirement.

        Args:
            permission: Catalog permission; unknown strings fail here, at import time
            tenant_param: Path parameter holding the tenant id, None for no tenant
        """
        self.permission = parse_permission(permission)
        self.tenant_param = tenant_param

    async def __call__(
        self,
        request: Request,
        user_id: CurrentUserIdDep,
        engine: AuthzEngineDep,
    ) -> None:
        """Check permission and raise 403 if not allowed."""
        tenant_id = _tenant_from_path(request, self.tenant_param)
        allowed = await engine.authorize(user_id, self.permission, tenant_id)

        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "PERMISSION_DENIED",
                    "message": "Permission denied",
                    "permission": self.permission.value,
                },
            )


# ============================================================================
# Profile Dependency
# ============================================================================


async def get_current_profile(
    user_id: CurrentUserIdDep,
    service: TenantAdminServiceDep,
):
    """Current user's profile, provisioned on first request."""
    return await service.ensure_profile(user_id)
