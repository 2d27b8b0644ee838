"""
Permission catalog: the vocabulary of capabilities the platform understands.

The catalog lives in the permissions table so new keys can be added without
redeploying the evaluator. PERMISSION_CATALOG is the seed data.
"""
from collections import defaultdict
from typing import Optional
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from scout_rbac.core.exceptions import UnknownPermissionError
from scout_rbac.features.permissions.cache import role_cache
from scout_rbac.features.permissions.models import Permission
from scout_rbac.utils import get_logger


log = get_logger(__name__)


# (key, name, category, description)
PERMISSION_CATALOG: list[tuple[str, str, str, str]] = [
    # Organization
    ("org.create", "Create Organizations", "organization", "Create new organizations in the system"),
    ("org.view", "View Organization", "organization", "View organization details"),
    ("org.edit", "Edit Organization", "organization", "Edit organization settings"),
    ("org.delete", "Delete Organization", "organization", "Delete organizations"),

    # User management
    ("users.view", "View Users", "users", "View user lists and details"),
    ("users.invite", "Invite Users", "users", "Invite new users to the organization"),
    ("users.edit", "Edit Users", "users", "Edit user information and settings"),
    ("users.delete", "Delete Users", "users", "Remove users from the organization"),
    ("users.assign_roles", "Assign Roles", "users", "Assign roles to users"),
    ("users.assign_district", "Assign District Role", "users", "Assign district administrator role to users"),

    # Participants
    ("participants.view", "View Participants", "participants", "View participant lists and details"),
    ("participants.create", "Create Participants", "participants", "Add new participants"),
    ("participants.edit", "Edit Participants", "participants", "Edit participant information"),
    ("participants.delete", "Delete Participants", "participants", "Remove participants"),
    ("participants.transfer", "Transfer Participants", "participants", "Transfer participants between groups"),

    # Finance
    ("finance.view", "View Finances", "finance", "View financial information and reports"),
    ("finance.manage", "Manage Finances", "finance", "Manage financial transactions and settings"),
    ("finance.approve", "Approve Payments", "finance", "Approve and process payments"),

    # Budget
    ("budget.view", "View Budget", "budget", "View budget information"),
    ("budget.manage", "Manage Budget", "budget", "Create and edit budgets"),

    # Fundraisers
    ("fundraisers.view", "View Fundraisers", "fundraisers", "View fundraiser information"),
    ("fundraisers.create", "Create Fundraisers", "fundraisers", "Create new fundraisers"),
    ("fundraisers.edit", "Edit Fundraisers", "fundraisers", "Edit fundraiser details"),
    ("fundraisers.delete", "Delete Fundraisers", "fundraisers", "Remove fundraisers"),

    # Inventory / equipment
    ("inventory.view", "View Inventory", "inventory", "View equipment and inventory"),
    ("inventory.manage", "Manage Inventory", "inventory", "Add, edit, and remove inventory items"),
    ("inventory.reserve", "Reserve Equipment", "inventory", "Reserve equipment for activities"),
    ("inventory.value", "View Inventory Values", "inventory", "View monetary values of inventory"),

    # Badges
    ("badges.view", "View Badges", "badges", "View badge information and progress"),
    ("badges.approve", "Approve Badges", "badges", "Approve badge completions"),
    ("badges.manage", "Manage Badges", "badges", "Create and configure badges"),

    # Activities
    ("activities.view", "View Activities", "activities", "View activities and events"),
    ("activities.create", "Create Activities", "activities", "Create new activities"),
    ("activities.edit", "Edit Activities", "activities", "Edit activity details"),
    ("activities.delete", "Delete Activities", "activities", "Remove activities"),

    # Attendance
    ("attendance.view", "View Attendance", "attendance", "View attendance records"),
    ("attendance.manage", "Manage Attendance", "attendance", "Record and edit attendance"),

    # Points
    ("points.view", "View Points", "points", "View points and honors"),
    ("points.manage", "Manage Points", "points", "Award and manage points"),

    # Carpools
    ("carpools.view", "View Carpools", "carpools", "View carpool information"),
    ("carpools.manage", "Manage Carpools", "carpools", "Create and manage carpool arrangements"),

    # Reports
    ("reports.view", "View Reports", "reports", "Access all system reports"),
    ("reports.export", "Export Reports", "reports", "Export reports to various formats"),

    # Groups
    ("groups.view", "View Groups", "groups", "View group information"),
    ("groups.create", "Create Groups", "groups", "Create new groups"),
    ("groups.edit", "Edit Groups", "groups", "Edit group details"),
    ("groups.delete", "Delete Groups", "groups", "Remove groups"),

    # Communications
    ("communications.send", "Send Communications", "communications", "Send messages to parents and participants"),

    # Roles
    ("roles.view", "View Roles", "roles", "View available roles and permissions"),
    ("roles.manage", "Manage Roles", "roles", "Create and edit custom roles"),

    # Forms
    ("forms.view", "View Forms", "forms", "View form submissions and structures"),
    ("forms.submit", "Submit Forms", "forms", "Submit forms for participants"),
    ("forms.manage", "Manage Forms", "forms", "Manage form formats and templates"),
    ("forms.create", "Create Forms", "forms", "Create new form templates"),
    ("forms.edit", "Edit Forms", "forms", "Edit form templates and formats"),
    ("forms.delete", "Delete Forms", "forms", "Delete form templates"),

    # Honors
    ("honors.view", "View Honors", "honors", "View honors and awards history"),
    ("honors.create", "Award Honors", "honors", "Award honors to participants"),
    ("honors.manage", "Manage Honors", "honors", "Manage honor types and settings"),

    # Meetings
    ("meetings.view", "View Meetings", "meetings", "View meeting preparations and invites"),
    ("meetings.create", "Create Meetings", "meetings", "Create meeting preparations"),
    ("meetings.edit", "Edit Meetings", "meetings", "Edit meeting preparations"),
    ("meetings.delete", "Delete Meetings", "meetings", "Delete meeting preparations"),
    ("meetings.manage", "Manage Meetings", "meetings", "Full meeting management access"),

    # Medication
    ("medication.view", "View Medication", "medication", "View medication requirements and distributions"),
    ("medication.manage", "Manage Medication", "medication", "Manage medication requirements and distributions"),
    ("medication.distribute", "Distribute Medication", "medication", "Record medication distributions"),

    # Announcements
    ("announcements.view", "View Announcements", "announcements", "View announcements"),
    ("announcements.create", "Create Announcements", "announcements", "Create new announcements"),
    ("announcements.edit", "Edit Announcements", "announcements", "Edit announcements"),
    ("announcements.delete", "Delete Announcements", "announcements", "Delete announcements"),
    ("announcements.manage", "Manage Announcements", "announcements", "Full announcement management access"),

    # Resources
    ("resources.view", "View Resources", "resources", "View shared resources and files"),
    ("resources.create", "Create Resources", "resources", "Upload new resources"),
    ("resources.edit", "Edit Resources", "resources", "Edit resource information"),
    ("resources.delete", "Delete Resources", "resources", "Delete resources"),
    ("resources.manage", "Manage Resources", "resources", "Full resource management access"),

    # Data import/export
    ("data.import", "Import Data", "data", "Import external data into the system"),
    ("data.export", "Export Data", "data", "Export system data"),

    # Notifications
    ("notifications.manage", "Manage Notifications", "notifications", "Manage push notification subscriptions"),
    ("notifications.send", "Send Notifications", "notifications", "Send push notifications to users"),

    # Payment calendar (finance category)
    ("calendar.view", "View Payment Calendar", "finance", "View payment calendars and schedules"),
    ("calendar.manage", "Manage Payment Calendar", "finance", "Manage payment calendars and schedules"),

    # Guardians (participants category)
    ("guardians.view", "View Guardians", "participants", "View guardian/parent information"),
    ("guardians.edit", "Edit Guardians", "participants", "Edit guardian/parent information"),
    ("guardians.manage", "Manage Guardians", "participants", "Full guardian management access"),
]


async def list_permissions(db: AsyncSession, category: Optional[str] = None) -> list[Permission]:
    """
    List catalog permissions ordered by category then key.

    Storage errors propagate: without the catalog nothing else can work.
    """
    stmt = select(Permission).order_by(Permission.category, Permission.key)
    if category:
        stmt = stmt.where(Permission.category == category)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def group_permissions_by_category(db: AsyncSession) -> dict[str, list[Permission]]:
    """Catalog grouped by category, for role administration screens."""
    grouped: dict[str, list[Permission]] = defaultdict(list)
    for permission in await list_permissions(db):
        grouped[permission.category].append(permission)
    return dict(grouped)


async def get_permissions_by_keys(db: AsyncSession, keys: set[str]) -> dict[str, Permission]:
    """
    Resolve permission keys to catalog rows.

    Raises:
        UnknownPermissionError: if any key is not in the catalog
    """
    if not keys:
        return {}
    result = await db.execute(select(Permission).where(Permission.key.in_(keys)))
    found = {permission.key: permission for permission in result.scalars().all()}
    missing = sorted(keys - found.keys())
    if missing:
        raise UnknownPermissionError(f"Unknown permission key(s): {', '.join(missing)}")
    return found


async def delete_permission(db: AsyncSession, key: str) -> None:
    """
    Remove a key from the catalog (administrative only).

    Grants referencing the key are removed by cascade, so every cached role
    snapshot is dropped.
    """
    await get_permissions_by_keys(db, {key})
    await db.execute(delete(Permission).where(Permission.key == key))
    await db.commit()
    role_cache.clear()
    log.info(f"Deleted permission '{key}' from catalog")
