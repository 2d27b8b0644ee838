"""
Form template and form permission models.

Form access is not a flat permission key: each role gets an independent
view/submit/edit/approve matrix per form template, and templates are owned
by an organization.
"""
from sqlalchemy import String, ForeignKey, Boolean, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from scout_rbac.core.database.base import Base, TimestampMixin, generate_ulid


class FormTemplate(Base, TimestampMixin):
    """
    Organization-owned form definition (health sheet, risk acceptance, badge request...).

    category overrides the category derived from form_type when choosing default grants.
    """
    __tablename__ = "form_templates"
    __table_args__ = (
        UniqueConstraint("organization_id", "form_type", name="uq_form_templates_organization_form_type"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    form_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    def __repr__(self) -> str:
        return f"<FormTemplate(id={self.id}, form_type={self.form_type!r}, org_id={self.organization_id})>"


class FormPermission(Base, TimestampMixin):
    """
    Capability matrix granted to one role on one form template.

    Each flag is independent: a role may view-only one form and fully manage another.
    """
    __tablename__ = "form_permissions"
    __table_args__ = (
        UniqueConstraint("form_template_id", "role_id", name="uq_form_permissions_form_role"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    form_template_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("form_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    role_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    can_view: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_submit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_edit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_approve: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<FormPermission(form={self.form_template_id}, role={self.role_id}, "
            f"view={self.can_view}, submit={self.can_submit}, edit={self.can_edit}, approve={self.can_approve})>"
        )
