"""
Permission and role catalogs.

Both catalogs are closed: every value the engine or the admin API
accepts must be a member of one of these enums. Values are stable,
case-sensitive strings shared with the database schema.
"""

import enum
import uuid
from typing import NewType, Optional, Union

from app.authz.errors import UnknownPermissionError, UnknownRoleError


UserId = NewType("UserId", uuid.UUID)
TenantId = NewType("TenantId", uuid.UUID)

# Tenant context of an authorization query. None means "no tenant context";
# it is not the same thing as a global role assignment (see AssignmentScope).
TenantContext = Optional[TenantId]

SYSTEM_PREFIX = "system."
TENANTS_PREFIX = "tenants."


class AppPermission(str, enum.Enum):
    """Fine-grained permissions, namespaced by scope prefix."""

    # System level (global roles only)
    SYSTEM_ALL = "system.all"
    SYSTEM_USERS_MANAGE = "system.users.manage"
    SYSTEM_ROLES_MANAGE = "system.roles.manage"

    # Tenant level
    TENANTS_ALL = "tenants.all"
    TENANTS_CREATE = "tenants.create"
    TENANTS_UPDATE = "tenants.update"
    TENANTS_DELETE = "tenants.delete"
    TENANTS_READ = "tenants.read"
    TENANTS_MEMBERS_ASSIGN = "tenants.members.assign"
    TENANTS_MEMBERS_REMOVE = "tenants.members.remove"
    TENANTS_ROLES_EDIT = "tenants.roles.edit"
    TENANTS_ROLES_CREATE = "tenants.roles.create"
    TENANTS_ROLES_ASSIGN = "tenants.roles.assign"
    TENANTS_ROLES_DELETE = "tenants.roles.delete"
    TENANTS_AUDIT_VIEW = "tenants.audit.view"

    # Member management
    TENANTS_MEMBERS_VIEW = "tenants.members.view"
    TENANTS_MEMBERS_INVITE = "tenants.members.invite"

    # Role viewing
    TENANTS_ROLES_VIEW = "tenants.roles.view"

    # Tenant settings
    TENANTS_SETTINGS_VIEW = "tenants.settings.view"
    TENANTS_SETTINGS_EDIT = "tenants.settings.edit"

    @property
    def is_system(self) -> bool:
        return self.value.startswith(SYSTEM_PREFIX)

    @property
    def is_wildcard(self) -> bool:
        return self in (AppPermission.SYSTEM_ALL, AppPermission.TENANTS_ALL)

    @property
    def wildcard(self) -> "AppPermission":
        """The namespace wildcard that subsumes this permission."""
        return AppPermission.SYSTEM_ALL if self.is_system else AppPermission.TENANTS_ALL


class AppRole(str, enum.Enum):
    """Named roles. Permissions are attached via default_role_permissions."""

    ADMINISTRATOR = "administrator"
    TENANT_MODERATOR = "tenant_moderator"
    MEMBER = "member"
    BASIC_USER = "basic_user"
    SYSTEM_ADMIN = "system_admin"


class RoleType(str, enum.Enum):
    """Kind of a role assignment.

    Only DEFAULT assignments take part in authorization. CUSTOM is
    reserved by the schema and never resolved.
    """

    DEFAULT = "default"
    CUSTOM = "custom"


class TenantIcon(str, enum.Enum):
    BUILDING = "building"
    BRIEFCASE = "briefcase"
    LANDMARK = "landmark"
    FACTORY = "factory"


SYSTEM_PERMISSIONS = frozenset(p for p in AppPermission if p.is_system)
TENANT_PERMISSIONS = frozenset(p for p in AppPermission if not p.is_system)


def parse_permission(value: Union[str, AppPermission]) -> AppPermission:
    """Convert a boundary string to a catalog permission.

    Raises:
        UnknownPermissionError: value is not in the catalog
    """
    if isinstance(value, AppPermission):
        return value
    try:
        return AppPermission(value)
    except ValueError:
        raise UnknownPermissionError(value) from None


def parse_role(value: Union[str, AppRole]) -> AppRole:
    """Convert a boundary string to a catalog role.

    Raises:
        UnknownRoleError: value is not in the catalog
    """
    if isinstance(value, AppRole):
        return value
    try:
        return AppRole(value)
    except ValueError:
        raise UnknownRoleError(value) from None


def parse_permission_set(values) -> frozenset[AppPermission]:
    """Parse a stored permission list into a set."""
    return frozenset(parse_permission(v) for v in values or ())
