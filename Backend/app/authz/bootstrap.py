"""
Default role permission templates and startup bootstrap.

Seeds default_role_permissions for catalog roles that have no row yet,
and optionally grants the configured bootstrap user a global
system_admin role.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.authz.cache import RolePermissionCache
from app.authz.catalog import AppPermission, AppRole
from app.authz.service import TenantAdminService

logger = structlog.get_logger(__name__)


DEFAULT_ROLE_PERMISSIONS: dict[AppRole, dict] = {
    AppRole.SYSTEM_ADMIN: {
        "permissions": [AppPermission.SYSTEM_ALL],
        "notes": "Full system access. Does not include tenant permissions.",
    },
    AppRole.ADMINISTRATOR: {
        "permissions": [AppPermission.TENANTS_ALL],
        "notes": "Full access within a tenant.",
    },
    AppRole.TENANT_MODERATOR: {
        "permissions": [
            AppPermission.TENANTS_READ,
            AppPermission.TENANTS_MEMBERS_VIEW,
            AppPermission.TENANTS_MEMBERS_INVITE,
            AppPermission.TENANTS_ROLES_VIEW,
            AppPermission.TENANTS_SETTINGS_VIEW,
        ],
        "notes": "Can view a tenant and invite members.",
    },
    AppRole.MEMBER: {
        "permissions": [
            AppPermission.TENANTS_READ,
            AppPermission.TENANTS_MEMBERS_VIEW,
            AppPermission.TENANTS_ROLES_VIEW,
            AppPermission.TENANTS_SETTINGS_VIEW,
        ],
        "notes": "Read-only tenant access.",
    },
    AppRole.BASIC_USER: {
        "permissions": [AppPermission.TENANTS_CREATE],
        "notes": "Global role held by every signed-up user; allows creating tenants.",
    },
}


async def seed_default_role_permissions(
    db: AsyncSession,
    cache: Optional[RolePermissionCache] = None,
    templates: Optional[dict[AppRole, dict]] = None,
) -> dict[str, int]:
    """
    Insert permission sets for roles that have none.

    Existing rows are never modified. Returns counts of created/skipped rows.
    """
    service = TenantAdminService(db, cache)
    stats = {"roles_created": 0, "roles_skipped": 0}

    for role, template in (templates or DEFAULT_ROLE_PERMISSIONS).items():
        if await service.get_role_permissions(role) is not None:
            stats["roles_skipped"] += 1
            continue

        await service.set_role_permissions(role, template["permissions"], template.get("notes"))
        stats["roles_created"] += 1

    logger.info("Default role permissions seeded", **stats)
    return stats


async def ensure_bootstrap_admin(db: AsyncSession, user_id: uuid.UUID) -> bool:
    """
    Grant a global system_admin assignment to user_id.

    Returns True if the assignment was created, False if it already existed.
    """
    service = TenantAdminService(db)
    existing = await service.list_assignments(tenant_id=None, user_id=user_id)
    if any(a.role == AppRole.SYSTEM_ADMIN for a in existing):
        logger.info("Bootstrap admin already present", user_id=str(user_id))
        return False

    await service.grant_role(user_id, AppRole.SYSTEM_ADMIN)
    logger.warning("Bootstrap admin granted system_admin", user_id=str(user_id))
    return True
