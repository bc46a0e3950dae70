"""
Tenant administration service.

CRUD over tenants, memberships, role assignments, role permission sets
and user profiles. Enforces the store invariants (uniqueness, cascade,
membership before tenant role) but makes no authorization decisions;
callers gate every operation with the AuthorizationEngine.
"""

import re
import uuid
from typing import Any, Iterable, Optional, Union

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.authz.cache import RolePermissionCache
from app.authz.catalog import AppPermission, AppRole, RoleType, TenantIcon, parse_permission, parse_role
from app.authz.errors import (
    DuplicateEntityError,
    EntityNotFoundError,
    InvalidAssignmentError,
    InvalidEntityError,
)
from app.authz.models import (
    LANGUAGE_PATTERN,
    TENANT_NAME_PATTERN,
    DefaultRolePermission,
    Tenant,
    TenantMember,
    TenantUserRole,
    UserProfile,
)

logger = structlog.get_logger(__name__)


class TenantAdminService:
    """
    Administrative store operations.

    Provides:
    - User profile provisioning and editing
    - Tenant registry management
    - Membership management
    - Role assignment management
    - Default role permission set management
    """

    def __init__(
        self,
        db: AsyncSession,
        cache: Optional[RolePermissionCache] = None,
        signup_role: Optional[Union[AppRole, str]] = None,
    ):
        self.db = db
        self.cache = cache
        # Global role every newly provisioned user receives
        self.signup_role = parse_role(signup_role) if signup_role is not None else None

    async def _commit(self, conflict_message: str) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateEntityError(conflict_message) from e

    # ========================================================================
    # User Profiles
    # ========================================================================

    async def get_profile(self, user_id: uuid.UUID) -> Optional[UserProfile]:
        """Get profile by user id."""
        return await self.db.get(UserProfile, user_id)

    async def ensure_profile(self, user_id: uuid.UUID, commit: bool = True) -> UserProfile:
        """
        Return the user's profile, creating it on first sight.

        A newly created profile also receives the global signup role,
        when one is configured.
        """
        profile = await self.get_profile(user_id)
        if profile is not None:
            return profile

        profile = UserProfile(id=user_id, language="en-GB")
        self.db.add(profile)
        if self.signup_role is not None:
            # Profile row before the assignment referencing it
            await self.db.flush()
            self.db.add(
                TenantUserRole(
                    tenant_id=None,
                    user_id=user_id,
                    role=self.signup_role,
                    role_type=RoleType.DEFAULT,
                )
            )
        if commit:
            await self._commit(f"Profile '{user_id}' already exists")
        else:
            await self.db.flush()
        logger.info(
            "User profile provisioned",
            user_id=str(user_id),
            signup_role=self.signup_role.value if self.signup_role else None,
        )
        return profile

    async def update_profile(self, user_id: uuid.UUID, data: dict[str, Any]) -> UserProfile:
        """Update profile fields. Only set (non-None) values are applied."""
        profile = await self.get_profile(user_id)
        if profile is None:
            raise EntityNotFoundError(f"Profile '{user_id}' not found")

        language = data.get("language")
        if language is not None and not re.fullmatch(LANGUAGE_PATTERN, language):
            raise InvalidEntityError(f"Invalid language code: {language!r}")

        for key in ("first_name", "last_name", "display_name", "language"):
            value = data.get(key)
            if value is not None:
                setattr(profile, key, value)

        await self.db.commit()
        return profile

    async def delete_profile(self, user_id: uuid.UUID) -> None:
        """Delete a profile; memberships, assignments and created tenants cascade."""
        result = await self.db.execute(delete(UserProfile).where(UserProfile.id == user_id))
        if result.rowcount == 0:
            await self.db.rollback()
            raise EntityNotFoundError(f"Profile '{user_id}' not found")
        await self.db.commit()
        self.db.expunge_all()
        logger.info("User profile deleted", user_id=str(user_id))

    # ========================================================================
    # Tenants
    # ========================================================================

    async def get_tenant(self, tenant_id: uuid.UUID) -> Optional[Tenant]:
        """Get tenant by ID."""
        return await self.db.get(Tenant, tenant_id)

    async def _require_tenant(self, tenant_id: uuid.UUID) -> Tenant:
        tenant = await self.get_tenant(tenant_id)
        if tenant is None:
            raise EntityNotFoundError(f"Tenant '{tenant_id}' not found")
        return tenant

    async def get_tenant_by_name(self, name: str) -> Optional[Tenant]:
        """Get tenant by unique name."""
        result = await self.db.execute(select(Tenant).where(Tenant.name == name))
        return result.scalar_one_or_none()

    async def create_tenant(
        self,
        name: str,
        created_by: uuid.UUID,
        display_name: str = "",
        logo_icon: Union[TenantIcon, str] = TenantIcon.BUILDING,
    ) -> Tenant:
        """
        Create a tenant.

        The creator becomes a member and receives a tenant-scoped
        administrator assignment.
        """
        if not re.fullmatch(TENANT_NAME_PATTERN, name):
            raise InvalidEntityError(f"Invalid tenant name: {name!r}")
        try:
            icon = TenantIcon(logo_icon)
        except ValueError:
            raise InvalidEntityError(f"Invalid logo icon: {logo_icon!r}") from None

        if await self.get_tenant_by_name(name) is not None:
            raise DuplicateEntityError(f"Tenant '{name}' already exists")

        await self.ensure_profile(created_by, commit=False)

        tenant = Tenant(
            name=name,
            display_name=display_name,
            logo_icon=icon,
            created_by=created_by,
        )
        self.db.add(tenant)
        await self.db.flush()

        self.db.add(TenantMember(tenant_id=tenant.id, user_id=created_by))
        self.db.add(
            TenantUserRole(
                tenant_id=tenant.id,
                user_id=created_by,
                role=AppRole.ADMINISTRATOR,
                role_type=RoleType.DEFAULT,
            )
        )

        await self._commit(f"Tenant '{name}' already exists")
        await self.db.refresh(tenant)
        logger.info("Tenant created", tenant_id=str(tenant.id), name=name, created_by=str(created_by))
        return tenant

    async def update_tenant(self, tenant_id: uuid.UUID, data: dict[str, Any]) -> Tenant:
        """Update display attributes. The name is immutable."""
        tenant = await self._require_tenant(tenant_id)

        if data.get("display_name") is not None:
            tenant.display_name = data["display_name"]
        if data.get("logo_icon") is not None:
            try:
                tenant.logo_icon = TenantIcon(data["logo_icon"])
            except ValueError:
                raise InvalidEntityError(f"Invalid logo icon: {data['logo_icon']!r}") from None

        await self.db.commit()
        return tenant

    async def delete_tenant(self, tenant_id: uuid.UUID) -> None:
        """Delete tenant; memberships and tenant-scoped roles cascade."""
        result = await self.db.execute(delete(Tenant).where(Tenant.id == tenant_id))
        if result.rowcount == 0:
            await self.db.rollback()
            raise EntityNotFoundError(f"Tenant '{tenant_id}' not found")
        await self.db.commit()
        self.db.expunge_all()
        logger.info("Tenant deleted", tenant_id=str(tenant_id))

    async def list_tenants_for_user(self, user_id: uuid.UUID) -> list[Tenant]:
        """Tenants the user is a member of."""
        result = await self.db.execute(
            select(Tenant)
            .join(TenantMember, TenantMember.tenant_id == Tenant.id)
            .where(TenantMember.user_id == user_id)
            .order_by(Tenant.name)
        )
        return list(result.scalars().all())

    # ========================================================================
    # Memberships
    # ========================================================================

    async def get_membership(self, tenant_id: uuid.UUID, user_id: uuid.UUID) -> Optional[TenantMember]:
        return await self.db.get(TenantMember, (tenant_id, user_id))

    async def list_members(self, tenant_id: uuid.UUID) -> list[TenantMember]:
        """List members of a tenant."""
        await self._require_tenant(tenant_id)
        result = await self.db.execute(
            select(TenantMember)
            .where(TenantMember.tenant_id == tenant_id)
            .order_by(TenantMember.created_at, TenantMember.user_id)
        )
        return list(result.scalars().all())

    async def add_member(self, tenant_id: uuid.UUID, user_id: uuid.UUID) -> TenantMember:
        """Add a user to a tenant."""
        await self._require_tenant(tenant_id)
        if await self.get_membership(tenant_id, user_id) is not None:
            raise DuplicateEntityError(f"User '{user_id}' is already a member of '{tenant_id}'")

        await self.ensure_profile(user_id, commit=False)
        member = TenantMember(tenant_id=tenant_id, user_id=user_id)
        self.db.add(member)
        await self._commit(f"User '{user_id}' is already a member of '{tenant_id}'")
        await self.db.refresh(member)
        logger.info("Tenant member added", tenant_id=str(tenant_id), user_id=str(user_id))
        return member

    async def remove_member(self, tenant_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Remove a member and the roles they held in the tenant."""
        result = await self.db.execute(
            delete(TenantMember).where(
                TenantMember.tenant_id == tenant_id,
                TenantMember.user_id == user_id,
            )
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise EntityNotFoundError(f"User '{user_id}' is not a member of '{tenant_id}'")

        await self.db.execute(
            delete(TenantUserRole).where(
                TenantUserRole.tenant_id == tenant_id,
                TenantUserRole.user_id == user_id,
            )
        )
        await self.db.commit()
        self.db.expunge_all()
        logger.info("Tenant member removed", tenant_id=str(tenant_id), user_id=str(user_id))

    # ========================================================================
    # Role Assignments
    # ========================================================================

    async def _find_assignment(
        self,
        tenant_id: Optional[uuid.UUID],
        user_id: uuid.UUID,
        role: AppRole,
    ) -> Optional[TenantUserRole]:
        # NULL tenant ids never collide in a SQL unique constraint, so check here
        tenant_clause = (
            TenantUserRole.tenant_id.is_(None)
            if tenant_id is None
            else TenantUserRole.tenant_id == tenant_id
        )
        result = await self.db.execute(
            select(TenantUserRole).where(
                tenant_clause,
                TenantUserRole.user_id == user_id,
                TenantUserRole.role == role,
            )
        )
        return result.scalar_one_or_none()

    async def grant_role(
        self,
        user_id: uuid.UUID,
        role: Union[AppRole, str],
        tenant_id: Optional[uuid.UUID] = None,
        role_type: RoleType = RoleType.DEFAULT,
    ) -> TenantUserRole:
        """
        Grant a role, globally (tenant_id None) or within a tenant.

        Tenant-scoped grants require an existing membership.
        """
        if role is None:
            raise InvalidAssignmentError("A default role assignment requires a role")
        role = parse_role(role)
        role_type = RoleType(role_type)

        provisioned = False
        if tenant_id is not None:
            await self._require_tenant(tenant_id)
            if await self.get_membership(tenant_id, user_id) is None:
                raise InvalidAssignmentError(
                    f"User '{user_id}' must be a member of '{tenant_id}' to hold a tenant role"
                )
        else:
            provisioned = await self.get_profile(user_id) is None
            await self.ensure_profile(user_id, commit=False)

        existing = await self._find_assignment(tenant_id, user_id, role)
        if existing is not None and provisioned and role == self.signup_role:
            # Just granted by signup while provisioning the profile
            await self.db.commit()
            return existing
        if existing is not None:
            raise DuplicateEntityError(f"User '{user_id}' already holds '{role.value}' in this scope")

        assignment = TenantUserRole(
            tenant_id=tenant_id,
            user_id=user_id,
            role=role,
            role_type=role_type,
        )
        self.db.add(assignment)
        await self._commit(f"User '{user_id}' already holds '{role.value}' in this scope")
        logger.info(
            "Role granted",
            user_id=str(user_id),
            role=role.value,
            role_type=role_type.value,
            tenant_id=str(tenant_id) if tenant_id else None,
        )
        return assignment

    async def revoke_role(
        self,
        assignment_id: uuid.UUID,
        tenant_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> None:
        """
        Revoke an assignment.

        The assignment must belong to the given scope: tenant_id None
        addresses global assignments only.
        """
        assignment = await self.db.get(TenantUserRole, assignment_id)
        if (
            assignment is None
            or assignment.tenant_id != tenant_id
            or (user_id is not None and assignment.user_id != user_id)
        ):
            raise EntityNotFoundError(f"Role assignment '{assignment_id}' not found")

        await self.db.delete(assignment)
        await self.db.commit()
        logger.info("Role revoked", assignment_id=str(assignment_id), role=assignment.role.value)

    async def list_assignments(
        self,
        tenant_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> list[TenantUserRole]:
        """List assignments in a tenant, or global ones when tenant_id is None."""
        query = select(TenantUserRole)
        if tenant_id is None:
            query = query.where(TenantUserRole.tenant_id.is_(None))
        else:
            await self._require_tenant(tenant_id)
            query = query.where(TenantUserRole.tenant_id == tenant_id)
        if user_id is not None:
            query = query.where(TenantUserRole.user_id == user_id)

        result = await self.db.execute(query.order_by(TenantUserRole.user_id, TenantUserRole.role))
        return list(result.scalars().all())

    # ========================================================================
    # Default Role Permission Sets
    # ========================================================================

    async def get_role_permissions(self, role: Union[AppRole, str]) -> Optional[DefaultRolePermission]:
        """Get the permission set row of a role."""
        result = await self.db.execute(
            select(DefaultRolePermission).where(DefaultRolePermission.role == parse_role(role))
        )
        return result.scalar_one_or_none()

    async def list_role_permissions(self) -> list[DefaultRolePermission]:
        """Get all permission set rows."""
        result = await self.db.execute(select(DefaultRolePermission).order_by(DefaultRolePermission.role))
        return list(result.scalars().all())

    async def set_role_permissions(
        self,
        role: Union[AppRole, str],
        permissions: Iterable[Union[AppPermission, str]],
        notes: Optional[str] = None,
    ) -> DefaultRolePermission:
        """Create or replace the permission set of a role."""
        role = parse_role(role)
        values = sorted({parse_permission(p).value for p in permissions})

        row = await self.get_role_permissions(role)
        if row is None:
            row = DefaultRolePermission(role=role, permissions=values, notes=notes)
            self.db.add(row)
        else:
            row.permissions = values
            row.notes = notes

        await self._commit(f"Role '{role.value}' already has a permission set")
        await self.db.refresh(row)
        await self._invalidate_cache()
        logger.info("Role permissions updated", role=role.value, permissions=values)
        return row

    async def delete_role_permissions(self, role: Union[AppRole, str]) -> None:
        """Remove a role's permission set; its assignments then grant nothing."""
        role = parse_role(role)
        result = await self.db.execute(
            delete(DefaultRolePermission).where(DefaultRolePermission.role == role)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise EntityNotFoundError(f"Role '{role.value}' has no permission set")
        await self.db.commit()
        await self._invalidate_cache()
        logger.info("Role permissions deleted", role=role.value)

    async def _invalidate_cache(self) -> None:
        if self.cache is not None:
            await self.cache.invalidate()
