"""
Pydantic schemas for authorization.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.authz.catalog import AppPermission, AppRole, RoleType, TenantIcon
from app.authz.models import LANGUAGE_PATTERN, TENANT_NAME_PATTERN


# ============================================================================
# Decision Schemas
# ============================================================================


class PermissionCheckRequest(BaseModel):
    """Schema for checking a single permission."""
    # Kept as a plain string so unknown values reach the catalog parser
    permission: str
    tenant_id: Optional[UUID] = None


class PermissionCheckResponse(BaseModel):
    """Permission check response."""
    allowed: bool
    permission: AppPermission
    tenant_id: Optional[UUID] = None


class PermissionCheckBulkRequest(BaseModel):
    """Schema for checking multiple permissions."""
    permissions: list[str]
    tenant_id: Optional[UUID] = None


class PermissionCheckBulkResponse(BaseModel):
    """Bulk permission check response."""
    results: dict[str, bool]  # permission -> allowed


class CatalogResponse(BaseModel):
    """Closed catalogs exposed to clients."""
    permissions: list[AppPermission]
    roles: list[AppRole]
    role_types: list[RoleType]
    tenant_icons: list[TenantIcon]


# ============================================================================
# User Profile Schemas
# ============================================================================


class UserProfileUpdate(BaseModel):
    """Schema for updating own profile."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    language: Optional[str] = Field(None, pattern=LANGUAGE_PATTERN)


class UserProfileResponse(BaseModel):
    """User profile response."""
    id: UUID
    first_name: Optional[str]
    last_name: Optional[str]
    display_name: Optional[str]
    language: str

    class Config:
        from_attributes = True


# ============================================================================
# Tenant Schemas
# ============================================================================


class TenantCreate(BaseModel):
    """Schema for creating a tenant."""
    name: str = Field(..., pattern=TENANT_NAME_PATTERN)
    display_name: str = ""
    logo_icon: TenantIcon = TenantIcon.BUILDING


class TenantUpdate(BaseModel):
    """Schema for updating a tenant. The name is immutable."""
    display_name: Optional[str] = None
    logo_icon: Optional[TenantIcon] = None


class TenantResponse(BaseModel):
    """Tenant response schema."""
    id: UUID
    name: str
    display_name: str
    logo_icon: TenantIcon
    created_by: UUID
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class TenantListResponse(BaseModel):
    """Tenant list response."""
    items: list[TenantResponse]
    total: int


# ============================================================================
# Membership Schemas
# ============================================================================


class TenantMemberCreate(BaseModel):
    """Schema for adding a member to a tenant."""
    user_id: UUID


class TenantMemberResponse(BaseModel):
    """Tenant membership response."""
    tenant_id: UUID
    user_id: UUID
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class TenantMemberListResponse(BaseModel):
    """Tenant member list response."""
    items: list[TenantMemberResponse]
    total: int


# ============================================================================
# Role Assignment Schemas
# ============================================================================


class RoleAssignmentCreate(BaseModel):
    """Schema for granting a role."""
    user_id: UUID
    role: AppRole
    role_type: RoleType = RoleType.DEFAULT


class GlobalRoleAssignmentCreate(BaseModel):
    """Schema for granting a global role (user comes from the path)."""
    role: AppRole
    role_type: RoleType = RoleType.DEFAULT


class RoleAssignmentResponse(BaseModel):
    """Role assignment response."""
    id: UUID
    tenant_id: Optional[UUID]
    user_id: UUID
    role: AppRole
    role_type: RoleType

    class Config:
        from_attributes = True


class RoleAssignmentListResponse(BaseModel):
    """Role assignment list response."""
    items: list[RoleAssignmentResponse]
    total: int


# ============================================================================
# Role Permission Set Schemas
# ============================================================================


class RolePermissionSetUpdate(BaseModel):
    """Schema for replacing the permission set of a role."""
    permissions: list[AppPermission]
    notes: Optional[str] = None


class RolePermissionSetResponse(BaseModel):
    """Role permission set response."""
    id: UUID
    role: AppRole
    permissions: list[AppPermission]
    notes: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class RolePermissionSetListResponse(BaseModel):
    """Role permission set list response."""
    items: list[RolePermissionSetResponse]
    total: int


# ============================================================================
# Current User Authorization Response
# ============================================================================


class AuthzMeResponse(BaseModel):
    """Response for /authz/me: the caller's visible default assignments."""
    user_id: UUID
    tenant_id: Optional[UUID]
    roles: list[RoleAssignmentResponse]
    permissions: list[AppPermission]
