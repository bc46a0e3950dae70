"""
Authorization database models.

Implements the multi-tenant RBAC data model: user profiles, tenants,
tenant memberships, default role permission sets and role assignments.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.authz.catalog import AppRole, RoleType, TenantIcon, parse_permission_set
from app.core.database import Base


LANGUAGE_PATTERN = r"^[a-z]{2}(-[A-Z]{2})?$"
TENANT_NAME_PATTERN = r"^[a-z]{3,10}$"


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


# Shared so both tables reference the same named type on PostgreSQL
APP_ROLE_TYPE = Enum(AppRole, name="app_role", values_callable=_enum_values)


class UserProfile(Base):
    """
    Public user profile.

    Created automatically when an identity is first seen. The id is the
    identity provider's user id and anchors role assignments.
    """
    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
    )

    first_name: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    last_name: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    display_name: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    language: Mapped[str] = mapped_column(
        String(5),
        nullable=False,
        default="en-GB",
        server_default="en-GB",
    )

    __table_args__ = (
        CheckConstraint(
            "length(language) = 2 OR (length(language) = 5 AND substr(language, 3, 1) = '-')",
            name="valid_language_length",
        ),
        CheckConstraint(
            f"language ~ '{LANGUAGE_PATTERN}'",
            name="valid_language",
        ).ddl_if(dialect="postgresql"),
    )


class Tenant(Base):
    """
    Tenant (organization) registry entry.

    Deleting a tenant cascades to its memberships and tenant-scoped
    role assignments.
    """
    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(
        String(10),
        unique=True,
        nullable=False,
    )

    display_name: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        server_default="",
    )

    logo_icon: Mapped[TenantIcon] = mapped_column(
        Enum(
            TenantIcon,
            name="valid_logo_icon",
            values_callable=_enum_values,
            native_enum=False,
            create_constraint=True,
        ),
        nullable=False,
        default=TenantIcon.BUILDING,
    )

    created_by: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "length(name) BETWEEN 3 AND 10 AND name = lower(name)",
            name="valid_tenant_name_length",
        ),
        CheckConstraint(
            f"name ~ '{TENANT_NAME_PATTERN}'",
            name="valid_tenant_name",
        ).ddl_if(dialect="postgresql"),
    )


class TenantMember(Base):
    """
    Tenant membership (many-to-many between tenants and users).
    """
    __tablename__ = "tenant_members"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        primary_key=True,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        primary_key=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", name="uq_tenant_members_tenant_user"),
        Index("idx_tenant_members_user_id", "user_id"),
    )


class DefaultRolePermission(Base):
    """
    Permission set granted by a catalog role.

    Exactly one row per role. Wildcard permissions (system.all,
    tenants.all) are stored like any other member of the set.
    """
    __tablename__ = "default_role_permissions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    role: Mapped[AppRole] = mapped_column(
        APP_ROLE_TYPE,
        unique=True,
        nullable=False,
    )

    permissions: Mapped[list[str]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=list,
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def permission_set(self):
        return parse_permission_set(self.permissions)


class TenantUserRole(Base):
    """
    Role assignment, global (tenant_id is NULL) or tenant-scoped.
    """
    __tablename__ = "tenant_user_roles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # NULL means a global (system-wide) assignment
    tenant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=True,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False,
    )

    role: Mapped[AppRole] = mapped_column(
        APP_ROLE_TYPE,
        nullable=False,
    )

    role_type: Mapped[RoleType] = mapped_column(
        Enum(
            RoleType,
            name="valid_role_type",
            values_callable=_enum_values,
            native_enum=False,
            create_constraint=True,
        ),
        nullable=False,
        default=RoleType.DEFAULT,
        server_default=RoleType.DEFAULT.value,
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", "role", name="tenant_user_role_unique"),
        CheckConstraint(
            "role_type <> 'default' OR role IS NOT NULL",
            name="valid_role_assignment",
        ),
        Index("idx_tenant_user_roles_user_id", "user_id"),
        Index("idx_tenant_user_roles_tenant_user", "tenant_id", "user_id"),
    )

    @property
    def is_global(self) -> bool:
        return self.tenant_id is None
