"""
Seeding of the permission catalog, the default roles and organization provisioning.

Default role matrix:
- district: every permission
- unitadmin: every permission except creating organizations, assigning the
  district role and bulk data import/export
- leader: day-to-day unit operations
- parent / demoparent: read access to their own children's data (linked scope)
- finance, equipment, administration: functional roles
- demoadmin: every .view permission
"""
from typing import Any, Iterable, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scout_rbac.features.forms.defaults import DEFAULT_FORM_TEMPLATES, populate_organization_form_defaults
from scout_rbac.features.forms.models import FormTemplate
from scout_rbac.features.organizations.models import Organization
from scout_rbac.features.permissions.assignments import add_member, set_member_roles
from scout_rbac.features.permissions.catalog import PERMISSION_CATALOG
from scout_rbac.features.permissions.constants import (
    ADMINISTRATION,
    DEMO_ADMIN,
    DEMO_PARENT,
    DISTRICT,
    EQUIPMENT,
    FINANCE,
    LEADER,
    PARENT,
    UNIT_ADMIN,
)
from scout_rbac.features.permissions.grants import set_role_permissions
from scout_rbac.features.permissions.models import DataScope, Permission, Role
from scout_rbac.features.permissions.roles import create_role, get_role
from scout_rbac.utils import get_logger


log = get_logger(__name__)


DEFAULT_ROLES: list[dict[str, Any]] = [
    {
        "role_name": DISTRICT,
        "display_name": "District Administrator",
        "description": "Full access to every organization feature",
        "data_scope": DataScope.ORGANIZATION,
    },
    {
        "role_name": UNIT_ADMIN,
        "display_name": "Unit Administrator",
        "description": "Administers one unit",
        "data_scope": DataScope.ORGANIZATION,
    },
    {
        "role_name": LEADER,
        "display_name": "Leader",
        "description": "Runs activities, attendance and participant follow-up",
        "data_scope": DataScope.ORGANIZATION,
    },
    {
        "role_name": PARENT,
        "display_name": "Parent/Guardian",
        "description": "Sees and manages their own children",
        "data_scope": DataScope.LINKED,
    },
    {
        "role_name": FINANCE,
        "display_name": "Finance Manager",
        "description": "Manages fees, budgets and fundraisers",
        "data_scope": DataScope.ORGANIZATION,
    },
    {
        "role_name": EQUIPMENT,
        "display_name": "Equipment Manager",
        "description": "Manages equipment inventory and shared resources",
        "data_scope": DataScope.ORGANIZATION,
    },
    {
        "role_name": ADMINISTRATION,
        "display_name": "Administration",
        "description": "Reporting and read access for administrative staff",
        "data_scope": DataScope.ORGANIZATION,
    },
    {
        "role_name": DEMO_ADMIN,
        "display_name": "Demo Administrator",
        "description": "Read-only tour of the administrator screens",
        "data_scope": DataScope.ORGANIZATION,
    },
    {
        "role_name": DEMO_PARENT,
        "display_name": "Demo Parent",
        "description": "Read-only tour of the parent screens",
        "data_scope": DataScope.LINKED,
    },
]


# Grants are described by whole categories plus individual keys.
# "all": every catalog key. "like": start from another role's grants.
# "suffix" then keeps matching keys only; "exclude" drops keys.
DEFAULT_ROLE_GRANTS: dict[str, dict[str, Any]] = {
    DISTRICT: {"all": True},
    UNIT_ADMIN: {
        "all": True,
        "exclude": ["org.create", "users.assign_district", "data.import", "data.export"],
    },
    LEADER: {
        "categories": [
            "activities", "attendance", "points", "carpools", "groups", "communications",
            "meetings", "medication", "announcements",
        ],
        "keys": [
            "participants.view", "participants.create", "participants.edit",
            "participants.delete", "participants.transfer",
            "users.view", "badges.view", "badges.approve", "finance.view", "inventory.view",
            "org.view", "forms.view", "forms.submit", "honors.view", "honors.create",
            "resources.view", "resources.create", "resources.edit",
            "calendar.view", "guardians.view", "guardians.edit",
        ],
    },
    PARENT: {
        "keys": [
            "participants.view", "activities.view", "badges.view", "finance.view",
            "carpools.view", "carpools.manage", "attendance.view", "points.view",
            "forms.view", "forms.submit", "honors.view", "meetings.view", "medication.view",
            "announcements.view", "resources.view", "calendar.view", "guardians.view",
        ],
    },
    FINANCE: {
        "categories": ["finance", "budget", "fundraisers"],
        "keys": [
            "inventory.view", "inventory.value", "inventory.manage",
            "participants.view", "users.view", "org.view", "reports.view", "reports.export",
            "forms.view", "meetings.view", "resources.view", "guardians.view", "data.export",
        ],
    },
    EQUIPMENT: {
        "categories": ["inventory", "resources"],
        "keys": ["activities.view", "org.view", "forms.view"],
    },
    ADMINISTRATION: {
        "categories": ["reports"],
        "keys": [
            "participants.view", "users.view", "activities.view", "attendance.view",
            "finance.view", "badges.view", "points.view", "groups.view", "org.view",
            "forms.view", "honors.view", "meetings.view", "medication.view",
            "announcements.view", "resources.view", "calendar.view", "guardians.view",
            "data.export",
        ],
    },
    DEMO_ADMIN: {"all": True, "suffix": ".view"},
    DEMO_PARENT: {"like": PARENT, "suffix": ".view"},
}


def resolve_default_grants(role_name: str, catalog: Iterable[tuple[str, str]]) -> set[str]:
    """
    Expand a role's grant description against the catalog.

    Args:
        role_name: one of the DEFAULT_ROLE_GRANTS names
        catalog: (key, category) pairs

    Returns:
        Permission keys to grant; keys missing from the catalog are dropped
    """
    catalog = list(catalog)
    known = {key for key, _ in catalog}
    rules = DEFAULT_ROLE_GRANTS.get(role_name, {})

    if rules.get("like"):
        keys = resolve_default_grants(rules["like"], catalog)
    elif rules.get("all"):
        keys = set(known)
    else:
        categories = set(rules.get("categories", []))
        keys = {key for key, category in catalog if category in categories}
        keys |= set(rules.get("keys", []))

    if "suffix" in rules:
        keys = {key for key in keys if key.endswith(rules["suffix"])}
    keys -= set(rules.get("exclude", []))

    unknown = keys - known
    if unknown:
        log.warning(f"Default grants for '{role_name}' reference unknown keys: {sorted(unknown)}")
    return keys & known


async def seed_permission_catalog(db: AsyncSession) -> int:
    """
    Insert catalog keys that are missing. Safe to run repeatedly.

    Returns:
        Number of permissions created
    """
    result = await db.execute(select(Permission.key))
    existing = set(result.scalars().all())

    created = 0
    for key, name, category, description in PERMISSION_CATALOG:
        if key in existing:
            continue
        db.add(Permission(key=key, name=name, category=category, description=description))
        created += 1

    await db.commit()
    log.info(f"Seeded {created} permissions ({len(existing)} already present)")
    return created


async def seed_roles(db: AsyncSession, organization_id: Optional[str] = None) -> list[Role]:
    """
    Create the default system roles for an organization, or as shared templates
    when organization_id is None. Existing roles and their grants are left alone.
    """
    result = await db.execute(select(Permission.key, Permission.category))
    catalog = [(key, category) for key, category in result.all()]
    if not catalog:
        log.warning("Permission catalog is empty; seeding roles without grants")

    roles = []
    for definition in DEFAULT_ROLES:
        role_name = definition["role_name"]
        role = await get_role(db, organization_id, role_name)
        if role is not None:
            log.debug(f"Role '{role_name}' already exists in org {organization_id}, skipping")
            roles.append(role)
            continue

        role = await create_role(
            db,
            organization_id,
            role_name,
            definition["display_name"],
            data_scope=definition["data_scope"],
            description=definition["description"],
            is_system_role=True,
        )
        await set_role_permissions(db, role.id, resolve_default_grants(role_name, catalog), allow_system=True)
        roles.append(role)

    return roles


async def provision_organization(
    db: AsyncSession,
    name: str,
    owner_user_id: Optional[str] = None,
    form_templates: Iterable[tuple[str, str]] = DEFAULT_FORM_TEMPLATES,
) -> Organization:
    """
    Create an organization with its system roles, starting form templates
    and their default grants.

    Args:
        name: Organization name
        owner_user_id: User made a member holding the district role
        form_templates: (form_type, display_name) pairs to create
    """
    organization = Organization(name=name)
    db.add(organization)
    await db.commit()
    await db.refresh(organization)

    roles = {role.role_name: role for role in await seed_roles(db, organization.id)}

    for form_type, display_name in form_templates:
        db.add(FormTemplate(organization_id=organization.id, form_type=form_type, display_name=display_name))
    await db.flush()
    granted = await populate_organization_form_defaults(db, organization.id)
    await db.commit()

    if owner_user_id is not None:
        await add_member(db, organization.id, owner_user_id)
        await set_member_roles(db, organization.id, owner_user_id, [roles[DISTRICT].id])

    log.info(f"Provisioned organization '{name}' ({organization.id}) with {granted} default form grants")
    return organization
