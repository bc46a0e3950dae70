"""
Authorization API routes.

Provides endpoints for:
- Permission decisions for the current user
- Catalog listing
- Tenant CRUD
- Tenant membership management
- Tenant and global role assignments
- Default role permission sets
- Own user profile
"""

import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.authz.catalog import AppPermission, AppRole, RoleType, TenantIcon, parse_permission
from app.authz.dependencies import (
    AuthzEngineDep,
    RequirePermission,
    TenantAdminServiceDep,
    get_current_profile,
)
from app.authz.models import UserProfile
from app.authz.repository import RoleAssignmentRepository
from app.authz.schemas import (
    AuthzMeResponse,
    CatalogResponse,
    GlobalRoleAssignmentCreate,
    PermissionCheckBulkRequest,
    PermissionCheckBulkResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    RoleAssignmentCreate,
    RoleAssignmentListResponse,
    RoleAssignmentResponse,
    RolePermissionSetListResponse,
    RolePermissionSetResponse,
    RolePermissionSetUpdate,
    TenantCreate,
    TenantListResponse,
    TenantMemberCreate,
    TenantMemberListResponse,
    TenantMemberResponse,
    TenantResponse,
    TenantUpdate,
    UserProfileResponse,
    UserProfileUpdate,
)
from app.core.dependencies import CurrentUserIdDep

router = APIRouter(tags=["Authorization"])

CurrentProfileDep = Annotated[UserProfile, Depends(get_current_profile)]


# ============================================================================
# Decisions
# ============================================================================


@router.post("/authz/check", response_model=PermissionCheckResponse)
async def check_permission(
    data: PermissionCheckRequest,
    user_id: CurrentUserIdDep,
    engine: AuthzEngineDep,
):
    """Check whether the current user holds a permission."""
    permission = parse_permission(data.permission)
    allowed = await engine.authorize(user_id, permission, data.tenant_id)
    return PermissionCheckResponse(allowed=allowed, permission=permission, tenant_id=data.tenant_id)


@router.post("/authz/check/bulk", response_model=PermissionCheckBulkResponse)
async def check_permissions_bulk(
    data: PermissionCheckBulkRequest,
    user_id: CurrentUserIdDep,
    engine: AuthzEngineDep,
):
    """Check several permissions in one tenant context."""
    permissions = [parse_permission(p) for p in data.permissions]
    results = {}
    for permission in permissions:
        results[permission.value] = await engine.authorize(user_id, permission, data.tenant_id)
    return PermissionCheckBulkResponse(results=results)


@router.get("/authz/me", response_model=AuthzMeResponse)
async def get_me(
    user_id: CurrentUserIdDep,
    engine: AuthzEngineDep,
    tenant_id: Optional[uuid.UUID] = Query(None),
):
    """
    Current user's default role assignments and allowed permissions.

    With tenant_id, covers that tenant's roles plus global ones.
    """
    repository: RoleAssignmentRepository = engine.repository
    assignments = await repository.user_role_summary(user_id, tenant_id)

    allowed = []
    for permission in AppPermission:
        if await engine.authorize(user_id, permission, tenant_id):
            allowed.append(permission)

    return AuthzMeResponse(
        user_id=user_id,
        tenant_id=tenant_id,
        roles=[RoleAssignmentResponse.model_validate(a) for a in assignments],
        permissions=allowed,
    )


@router.get("/authz/catalog", response_model=CatalogResponse)
async def get_catalog():
    """List the closed permission and role catalogs."""
    return CatalogResponse(
        permissions=list(AppPermission),
        roles=list(AppRole),
        role_types=list(RoleType),
        tenant_icons=list(TenantIcon),
    )


# ============================================================================
# Tenants
# ============================================================================


@router.post(
    "/tenants",
    response_model=TenantResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(RequirePermission(AppPermission.TENANTS_CREATE, tenant_param=None))],
)
async def create_tenant(
    data: TenantCreate,
    user_id: CurrentUserIdDep,
    service: TenantAdminServiceDep,
):
    """Create a tenant; the caller becomes its administrator."""
    tenant = await service.create_tenant(
        name=data.name,
        created_by=user_id,
        display_name=data.display_name,
        logo_icon=data.logo_icon,
    )
    return TenantResponse.model_validate(tenant)


@router.get("/tenants", response_model=TenantListResponse)
async def list_my_tenants(
    user_id: CurrentUserIdDep,
    service: TenantAdminServiceDep,
):
    """List tenants the current user belongs to."""
    tenants = await service.list_tenants_for_user(user_id)
    return TenantListResponse(
        items=[TenantResponse.model_validate(t) for t in tenants],
        total=len(tenants),
    )


@router.get(
    "/tenants/{tenant_id}",
    response_model=TenantResponse,
    dependencies=[Depends(RequirePermission(AppPermission.TENANTS_READ))],
)
async def get_tenant(
    tenant_id: uuid.UUID,
    service: TenantAdminServiceDep,
):
    """Get tenant by ID."""
    tenant = await service.get_tenant(tenant_id)
    if tenant is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tenant '{tenant_id}' not found",
        )
    return TenantResponse.model_validate(tenant)


@router.patch(
    "/tenants/{tenant_id}",
    response_model=TenantResponse,
    dependencies=[Depends(RequirePermission(AppPermission.TENANTS_UPDATE))],
)
async def update_tenant(
    tenant_id: uuid.UUID,
    data: TenantUpdate,
    service: TenantAdminServiceDep,
):
    """Update tenant display attributes."""
    tenant = await service.update_tenant(tenant_id, data.model_dump(exclude_unset=True))
    return TenantResponse.model_validate(tenant)


@router.delete(
    "/tenants/{tenant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(RequirePermission(AppPermission.TENANTS_DELETE))],
)
async def delete_tenant(
    tenant_id: uuid.UUID,
    service: TenantAdminServiceDep,
):
    """Delete a tenant with its memberships and role assignments."""
    await service.delete_tenant(tenant_id)


# ============================================================================
# Tenant Members
# ============================================================================


@router.get(
    "/tenants/{tenant_id}/members",
    response_model=TenantMemberListResponse,
    dependencies=[Depends(RequirePermission(AppPermission.TENANTS_MEMBERS_VIEW))],
)
async def list_members(
    tenant_id: uuid.UUID,
    service: TenantAdminServiceDep,
):
    """List tenant members."""
    members = await service.list_members(tenant_id)
    return TenantMemberListResponse(
        items=[TenantMemberResponse.model_validate(m) for m in members],
        total=len(members),
    )


@router.post(
    "/tenants/{tenant_id}/members",
    response_model=TenantMemberResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(RequirePermission(AppPermission.TENANTS_MEMBERS_ASSIGN))],
)
async def add_member(
    tenant_id: uuid.UUID,
    data: TenantMemberCreate,
    service: TenantAdminServiceDep,
):
    """Add a user to the tenant."""
    member = await service.add_member(tenant_id, data.user_id)
    return TenantMemberResponse.model_validate(member)


@router.delete(
    "/tenants/{tenant_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(RequirePermission(AppPermission.TENANTS_MEMBERS_REMOVE))],
)
async def remove_member(
    tenant_id: uuid.UUID,
    user_id: uuid.UUID,
    service: TenantAdminServiceDep,
):
    """Remove a member and their tenant roles."""
    await service.remove_member(tenant_id, user_id)


# ============================================================================
# Tenant Role Assignments
# ============================================================================


@router.get(
    "/tenants/{tenant_id}/roles",
    response_model=RoleAssignmentListResponse,
    dependencies=[Depends(RequirePermission(AppPermission.TENANTS_ROLES_VIEW))],
)
async def list_tenant_roles(
    tenant_id: uuid.UUID,
    service: TenantAdminServiceDep,
    user_id: Optional[uuid.UUID] = Query(None),
):
    """List role assignments scoped to the tenant."""
    assignments = await service.list_assignments(tenant_id=tenant_id, user_id=user_id)
    return RoleAssignmentListResponse(
        items=[RoleAssignmentResponse.model_validate(a) for a in assignments],
        total=len(assignments),
    )


@router.post(
    "/tenants/{tenant_id}/roles",
    response_model=RoleAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(RequirePermission(AppPermission.TENANTS_ROLES_ASSIGN))],
)
async def grant_tenant_role(
    tenant_id: uuid.UUID,
    data: RoleAssignmentCreate,
    service: TenantAdminServiceDep,
):
    """Grant a tenant-scoped role to a member."""
    assignment = await service.grant_role(
        user_id=data.user_id,
        role=data.role,
        tenant_id=tenant_id,
        role_type=data.role_type,
    )
    return RoleAssignmentResponse.model_validate(assignment)


@router.delete(
    "/tenants/{tenant_id}/roles/{assignment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(RequirePermission(AppPermission.TENANTS_ROLES_ASSIGN))],
)
async def revoke_tenant_role(
    tenant_id: uuid.UUID,
    assignment_id: uuid.UUID,
    service: TenantAdminServiceDep,
):
    """Revoke a tenant-scoped role assignment."""
    await service.revoke_role(assignment_id, tenant_id=tenant_id)


# ============================================================================
# Default Role Permission Sets
# ============================================================================


@router.get(
    "/system/role-permissions",
    response_model=RolePermissionSetListResponse,
    dependencies=[Depends(RequirePermission(AppPermission.SYSTEM_ROLES_MANAGE, tenant_param=None))],
)
async def list_role_permissions(
    service: TenantAdminServiceDep,
):
    """List the permission set of every role."""
    rows = await service.list_role_permissions()
    return RolePermissionSetListResponse(
        items=[RolePermissionSetResponse.model_validate(r) for r in rows],
        total=len(rows),
    )


@router.put(
    "/system/role-permissions/{role}",
    response_model=RolePermissionSetResponse,
    dependencies=[Depends(RequirePermission(AppPermission.SYSTEM_ROLES_MANAGE, tenant_param=None))],
)
async def set_role_permissions(
    role: str,
    data: RolePermissionSetUpdate,
    service: TenantAdminServiceDep,
):
    """Create or replace a role's permission set."""
    row = await service.set_role_permissions(role, data.permissions, data.notes)
    return RolePermissionSetResponse.model_validate(row)


@router.delete(
    "/system/role-permissions/{role}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(RequirePermission(AppPermission.SYSTEM_ROLES_MANAGE, tenant_param=None))],
)
async def delete_role_permissions(
    role: str,
    service: TenantAdminServiceDep,
):
    """Remove a role's permission set."""
    await service.delete_role_permissions(role)


# ============================================================================
# Global Role Assignments
# ============================================================================


@router.get(
    "/system/users/{user_id}/roles",
    response_model=RoleAssignmentListResponse,
    dependencies=[Depends(RequirePermission(AppPermission.SYSTEM_USERS_MANAGE, tenant_param=None))],
)
async def list_global_roles(
    user_id: uuid.UUID,
    service: TenantAdminServiceDep,
):
    """List a user's global role assignments."""
    assignments = await service.list_assignments(tenant_id=None, user_id=user_id)
    return RoleAssignmentListResponse(
        items=[RoleAssignmentResponse.model_validate(a) for a in assignments],
        total=len(assignments),
    )


@router.post(
    "/system/users/{user_id}/roles",
    response_model=RoleAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(RequirePermission(AppPermission.SYSTEM_USERS_MANAGE, tenant_param=None))],
)
async def grant_global_role(
    user_id: uuid.UUID,
    data: GlobalRoleAssignmentCreate,
    service: TenantAdminServiceDep,
):
    """Grant a global role to a user."""
    assignment = await service.grant_role(user_id=user_id, role=data.role, role_type=data.role_type)
    return RoleAssignmentResponse.model_validate(assignment)


@router.delete(
    "/system/users/{user_id}/roles/{assignment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(RequirePermission(AppPermission.SYSTEM_USERS_MANAGE, tenant_param=None))],
)
async def revoke_global_role(
    user_id: uuid.UUID,
    assignment_id: uuid.UUID,
    service: TenantAdminServiceDep,
):
    """Revoke a global role assignment."""
    await service.revoke_role(assignment_id, tenant_id=None, user_id=user_id)


# ============================================================================
# Own Profile
# ============================================================================


@router.get("/profiles/me", response_model=UserProfileResponse)
async def get_my_profile(profile: CurrentProfileDep):
    """Get (and provision on first call) the current user's profile."""
    return UserProfileResponse.model_validate(profile)


@router.patch("/profiles/me", response_model=UserProfileResponse)
async def update_my_profile(
    data: UserProfileUpdate,
    profile: CurrentProfileDep,
    service: TenantAdminServiceDep,
):
    """Update the current user's profile. Profiles are owner-editable only."""
    updated = await service.update_profile(profile.id, data.model_dump(exclude_unset=True))
    return UserProfileResponse.model_validate(updated)
