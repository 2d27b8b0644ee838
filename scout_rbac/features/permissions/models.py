"""
Permission, Role and assignment models for organization-scoped RBAC.

This module implements a database-driven permission system with:
- A catalog of permission keys grouped by category
- Organization-scoped roles (or shared template roles with no organization)
- Role to permission grants
- Member role assignments as an explicit join table
- A per-role data scope (organization-wide vs linked records only)
"""
import enum
from datetime import datetime
from typing import Any, Dict
from sqlalchemy import (
    String, ForeignKey, Table, Column, JSON, Text, DateTime, Boolean, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column

from scout_rbac.core.database.base import Base, TimestampMixin, generate_ulid


class DataScope(str, enum.Enum):
    """Which slice of organization data a role's holder sees."""
    ORGANIZATION = "organization"  # All data in the organization
    LINKED = "linked"  # Only records explicitly linked to the user (e.g. parent -> own children)


# ============================================================================
# Association Tables for Many-to-Many Relationships
# ============================================================================

# Role-Permission grants
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

# Organization-User-Role assignments (users hold roles within specific organizations).
# RESTRICT on role deletion: a held role must be unassigned before it can be removed.
organization_user_roles = Table(
    "organization_user_roles",
    Base.metadata,
    Column("organization_id", String(26), ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="RESTRICT"), primary_key=True, index=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, default=datetime.now),
    Column("assigned_by_id", String(26), ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
)


# ============================================================================
# Core Models
# ============================================================================

class Permission(Base, TimestampMixin):
    """
    One discrete capability in the catalog.

    Examples:
    - key="finance.view", category="finance"
    - key="users.assign_roles", category="users"

    The category only groups permissions for administration screens; it plays
    no part in evaluation.
    """
    __tablename__ = "permissions"

    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Permission definition
    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, key={self.key!r}, category={self.category})>"


class Role(Base, TimestampMixin):
    """
    Named bundle of permission keys plus a data scope.

    Roles are organization-specific or shared templates (organization_id is null).
    System roles are provided by seeding and are protected from deletion.
    Examples: district, unitadmin, leader, parent
    """
    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("organization_id", "role_name", name="uq_roles_organization_role_name"),
    )

    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Optional: Link to specific organization (null = shared template role)
    organization_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    # Role definition
    role_name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_system_role: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    data_scope: Mapped[str] = mapped_column(
        String(20),
        default=DataScope.ORGANIZATION.value,
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, role_name={self.role_name!r}, org_id={self.organization_id}, scope={self.data_scope})>"


class AuditLog(Base, TimestampMixin):
    """
    Audit log for tracking administrative access-control changes.

    Tracks who did what, when, and from where.
    """
    __tablename__ = "audit_logs"

    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Actor
    user_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    # Context
    organization_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"
