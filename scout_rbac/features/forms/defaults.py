"""
Default form grants.

When a form template is created, or an organization is provisioned, each
template with no grant rows yet gets a starting capability matrix so that
some role can always reach it. Once rows exist, administrators own them and
nothing here touches them again.
"""
import enum
from typing import Optional
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from scout_rbac.features.forms.models import FormPermission, FormTemplate
from scout_rbac.features.forms.schemas import FormCapabilities
from scout_rbac.features.permissions.constants import (
    DEMO_ADMIN,
    DEMO_PARENT,
    DISTRICT,
    LEADER,
    PARENT,
    UNIT_ADMIN,
)
from scout_rbac.features.permissions.models import Role
from scout_rbac.utils import get_logger


log = get_logger(__name__)


class FormCategory(str, enum.Enum):
    ORGANIZATION = "organization"  # Organization settings; district only
    PARTICIPANT = "participant"  # Filled in per participant by guardians and leaders
    APPROVAL = "approval"  # Needs a leader's approval (badge requests)
    GENERAL = "general"  # Anything else


KNOWN_FORM_CATEGORIES: dict[str, FormCategory] = {
    "organization_info": FormCategory.ORGANIZATION,
    "risk_acceptance": FormCategory.PARTICIPANT,
    "fiche_sante": FormCategory.PARTICIPANT,
    "participant_registration": FormCategory.PARTICIPANT,
    "parent_guardian": FormCategory.PARTICIPANT,
    "badge_request": FormCategory.APPROVAL,
}

# Form templates every new organization starts with: (form_type, display_name)
DEFAULT_FORM_TEMPLATES: tuple[tuple[str, str], ...] = (
    ("organization_info", "Organization Information"),
    ("risk_acceptance", "Risk Acceptance"),
    ("fiche_sante", "Health Form"),
    ("participant_registration", "Participant Registration"),
    ("parent_guardian", "Parent / Guardian"),
    ("badge_request", "Badge Request"),
)

VIEW_SUBMIT = FormCapabilities(view=True, submit=True)
VIEW_EDIT = FormCapabilities(view=True, edit=True)
VIEW_SUBMIT_EDIT = FormCapabilities(view=True, submit=True, edit=True)
FULL = FormCapabilities.full()


def resolve_form_category(form_type: str, category: Optional[str] = None) -> FormCategory:
    """
    Category used to pick default grants.

    An explicit template category wins; otherwise the form type is looked up,
    and anything unknown is GENERAL.
    """
    if category:
        try:
            return FormCategory(category.lower())
        except ValueError:
            log.warning(f"Unknown form category {category!r} on {form_type!r}; using form type")
    return KNOWN_FORM_CATEGORIES.get(form_type, FormCategory.GENERAL)


def default_form_matrix(category: FormCategory) -> dict[str, FormCapabilities]:
    """Role name -> capabilities for a template of the given category."""
    if category == FormCategory.ORGANIZATION:
        return {DISTRICT: FULL}

    if category == FormCategory.PARTICIPANT:
        leader, parent = VIEW_SUBMIT_EDIT, VIEW_SUBMIT
    elif category == FormCategory.APPROVAL:
        leader, parent = FULL, VIEW_SUBMIT
    else:
        leader, parent = VIEW_EDIT, VIEW_SUBMIT

    return {
        DISTRICT: FULL,
        UNIT_ADMIN: FULL,
        DEMO_ADMIN: FULL,
        LEADER: leader,
        PARENT: parent,
        DEMO_PARENT: parent,
    }


async def _roles_by_name(db: AsyncSession, organization_id: str, role_names: set[str]) -> dict[str, Role]:
    """Organization roles shadow template roles of the same name."""
    result = await db.execute(
        select(Role).where(
            Role.role_name.in_(role_names),
            or_(Role.organization_id == organization_id, Role.organization_id.is_(None)),
        )
    )
    roles: dict[str, Role] = {}
    for role in result.scalars().all():
        if role.role_name not in roles or role.organization_id is not None:
            roles[role.role_name] = role
    return roles


async def has_form_grants(db: AsyncSession, form_template_id: str) -> bool:
    result = await db.execute(
        select(FormPermission.id).where(FormPermission.form_template_id == form_template_id).limit(1)
    )
    return result.first() is not None


async def populate_default_form_grants(db: AsyncSession, template: FormTemplate) -> int:
    """
    Add default grants to a template that has none. Flushes; the caller commits.

    Returns:
        Number of grant rows added (0 when the template already had grants)
    """
    if await has_form_grants(db, template.id):
        return 0

    category = resolve_form_category(template.form_type, template.category)
    matrix = default_form_matrix(category)
    roles = await _roles_by_name(db, template.organization_id, set(matrix))

    added = 0
    for role_name, capabilities in matrix.items():
        role = roles.get(role_name)
        if role is None:
            continue
        db.add(FormPermission(
            form_template_id=template.id,
            role_id=role.id,
            can_view=capabilities.view,
            can_submit=capabilities.submit,
            can_edit=capabilities.edit,
            can_approve=capabilities.approve,
        ))
        added += 1
    await db.flush()

    log.info(f"Added {added} default grants to form {template.form_type!r} ({category.value})")
    return added


async def populate_organization_form_defaults(db: AsyncSession, organization_id: str) -> int:
    """Populate every template of an organization that lacks grants. Flushes; the caller commits."""
    result = await db.execute(select(FormTemplate).where(FormTemplate.organization_id == organization_id))
    total = 0
    for template in result.scalars().all():
        total += await populate_default_form_grants(db, template)
    return total
