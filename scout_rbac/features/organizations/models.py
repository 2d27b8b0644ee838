"""
Organization models.

Organizations are the tenants of the platform (scout units, districts).
Users belong to organizations through membership rows; the roles a member
holds live in the organization_user_roles join table of the permissions feature.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Table, Column, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from scout_rbac.core.database.base import Base, TimestampMixin, generate_ulid


# Association table for many-to-many relationship between users and organizations
user_organizations = Table(
    "user_organizations",
    Base.metadata,
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("organization_id", String(26), ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True),
    Column("joined_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)


class Organization(Base, TimestampMixin):
    """
    Organization model representing one tenant.

    Seed roles and default form grants are created when the organization is provisioned.
    """
    __tablename__ = "organizations"

    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Organization settings
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name!r})>"
