"""
Authorization module.

Multi-tenant RBAC: catalog, data model, decision engine and the
administrative service over tenants, memberships and role assignments.
"""

from app.authz.catalog import AppPermission, AppRole, RoleType, TenantIcon
from app.authz.engine import AuthorizationEngine
from app.authz.errors import (
    AuthzDataAccessError,
    AuthzError,
    CatalogError,
    DuplicateEntityError,
    EntityNotFoundError,
    InvalidAssignmentError,
    InvalidEntityError,
    TenantAdminError,
    UnknownPermissionError,
    UnknownRoleError,
)
from app.authz.models import (
    DefaultRolePermission,
    Tenant,
    TenantMember,
    TenantUserRole,
    UserProfile,
)
from app.authz.repository import AssignmentScope, RoleAssignmentRepository
from app.authz.service import TenantAdminService
from app.authz.dependencies import (
    AuthzEngineDep,
    RequirePermission,
    TenantAdminServiceDep,
)
from app.authz.routes import router as authz_router

__all__ = [
    # Catalog
    "AppPermission",
    "AppRole",
    "RoleType",
    "TenantIcon",
    # Errors
    "AuthzError",
    "AuthzDataAccessError",
    "CatalogError",
    "UnknownPermissionError",
    "UnknownRoleError",
    "TenantAdminError",
    "EntityNotFoundError",
    "DuplicateEntityError",
    "InvalidEntityError",
    "InvalidAssignmentError",
    # Models
    "UserProfile",
    "Tenant",
    "TenantMember",
    "DefaultRolePermission",
    "TenantUserRole",
    # Engine / Service
    "AssignmentScope",
    "RoleAssignmentRepository",
    "AuthorizationEngine",
    "TenantAdminService",
    # Dependencies
    "AuthzEngineDep",
    "TenantAdminServiceDep",
    "RequirePermission",
    # Router
    "authz_router",
]
