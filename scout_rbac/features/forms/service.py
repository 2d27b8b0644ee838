"""
Form templates and their per-role capability matrix.
"""
from typing import Optional
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from scout_rbac.core.exceptions import (
    CrossOrganizationRoleError,
    DuplicateFormTemplateError,
    FormTemplateNotFoundError,
)
from scout_rbac.features.forms.defaults import populate_default_form_grants
from scout_rbac.features.forms.models import FormPermission, FormTemplate
from scout_rbac.features.forms.schemas import FormPermissionMatrixEntry
from scout_rbac.features.permissions.models import Role
from scout_rbac.features.permissions.roles import require_role
from scout_rbac.utils import get_logger


log = get_logger(__name__)


async def get_form_template(db: AsyncSession, organization_id: str, form_template_id: str) -> FormTemplate:
    """
    Raises:
        FormTemplateNotFoundError: if the template does not exist in this organization
    """
    result = await db.execute(
        select(FormTemplate).where(
            FormTemplate.id == form_template_id,
            FormTemplate.organization_id == organization_id,
        )
    )
    template = result.scalar_one_or_none()
    if template is None:
        raise FormTemplateNotFoundError()
    return template


async def list_form_templates(db: AsyncSession, organization_id: str) -> list[FormTemplate]:
    result = await db.execute(
        select(FormTemplate)
        .where(FormTemplate.organization_id == organization_id)
        .order_by(FormTemplate.form_type)
    )
    return list(result.scalars().all())


async def create_form_template(
    db: AsyncSession,
    organization_id: str,
    form_type: str,
    display_name: str,
    category: Optional[str] = None,
) -> FormTemplate:
    """
    Create a template and its default grants in one transaction.

    Raises:
        DuplicateFormTemplateError: if the organization already has this form type
    """
    existing = await db.execute(
        select(FormTemplate.id).where(
            FormTemplate.organization_id == organization_id,
            FormTemplate.form_type == form_type,
        )
    )
    if existing.first() is not None:
        raise DuplicateFormTemplateError(f"Form type '{form_type}' already exists in this organization")

    template = FormTemplate(
        organization_id=organization_id,
        form_type=form_type,
        display_name=display_name,
        category=category.lower() if category else None,
    )
    db.add(template)
    try:
        await db.flush()
        await populate_default_form_grants(db, template)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateFormTemplateError(f"Form type '{form_type}' already exists in this organization")
    await db.refresh(template)

    log.info(f"Created form template '{form_type}' in org {organization_id}")
    return template


async def set_form_permission(
    db: AsyncSession,
    organization_id: str,
    form_template_id: str,
    role_id: str,
    can_view: bool = False,
    can_submit: bool = False,
    can_edit: bool = False,
    can_approve: bool = False,
) -> FormPermission:
    """
    Upsert the four flags of one role on one form. All four are written together.

    Raises:
        FormTemplateNotFoundError, RoleNotFoundError, CrossOrganizationRoleError
    """
    await get_form_template(db, organization_id, form_template_id)
    role = await require_role(db, role_id)
    if role.organization_id is not None and role.organization_id != organization_id:
        raise CrossOrganizationRoleError(f"Role '{role.role_name}' belongs to a different organization")

    result = await db.execute(
        select(FormPermission).where(
            FormPermission.form_template_id == form_template_id,
            FormPermission.role_id == role_id,
        )
    )
    grant = result.scalar_one_or_none()
    if grant is None:
        grant = FormPermission(form_template_id=form_template_id, role_id=role_id)
        db.add(grant)

    grant.can_view = can_view
    grant.can_submit = can_submit
    grant.can_edit = can_edit
    grant.can_approve = can_approve
    await db.commit()
    await db.refresh(grant)

    log.info(
        f"Form {form_template_id} role '{role.role_name}': "
        f"view={can_view} submit={can_submit} edit={can_edit} approve={can_approve}"
    )
    return grant


async def list_form_permission_matrix(db: AsyncSession, organization_id: str) -> list[FormPermissionMatrixEntry]:
    """Every (template, role) pair of the organization; pairs without a grant row read as all false."""
    templates = await list_form_templates(db, organization_id)
    roles_result = await db.execute(
        select(Role)
        .where(or_(Role.organization_id == organization_id, Role.organization_id.is_(None)))
        .order_by(Role.role_name)
    )
    roles = list(roles_result.scalars().all())
    if not templates or not roles:
        return []

    grants_result = await db.execute(
        select(FormPermission).where(FormPermission.form_template_id.in_([t.id for t in templates]))
    )
    grants = {(g.form_template_id, g.role_id): g for g in grants_result.scalars().all()}

    entries = []
    for template in templates:
        for role in roles:
            grant = grants.get((template.id, role.id))
            entries.append(FormPermissionMatrixEntry(
                form_template_id=template.id,
                form_type=template.form_type,
                form_display_name=template.display_name,
                role_id=role.id,
                role_name=role.role_name,
                role_display_name=role.display_name,
                can_view=grant.can_view if grant else False,
                can_submit=grant.can_submit if grant else False,
                can_edit=grant.can_edit if grant else False,
                can_approve=grant.can_approve if grant else False,
            ))
    return entries
