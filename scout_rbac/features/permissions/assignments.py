"""
Organization memberships and the roles each member holds.

Assignments are rows of organization_user_roles. The foreign key to roles is
RESTRICT, so "is this role in use" is an existence query.
"""
from typing import Iterable, Optional
from sqlalchemy import select, delete, insert, or_
from sqlalchemy.ext.asyncio import AsyncSession

from scout_rbac.core.exceptions import (
    CrossOrganizationRoleError,
    MembershipNotFoundError,
    PermissionDeniedError,
    RoleNotFoundError,
)
from scout_rbac.features.organizations.models import user_organizations
from scout_rbac.features.permissions.constants import (
    HIGHEST_PRIVILEGE_ROLE,
    USERS_ASSIGN_DISTRICT,
    USERS_ASSIGN_ROLES,
)
from scout_rbac.features.permissions.models import Role, organization_user_roles
from scout_rbac.features.permissions.schemas import Principal
from scout_rbac.utils import get_logger


log = get_logger(__name__)


async def is_member(db: AsyncSession, organization_id: str, user_id: str) -> bool:
    result = await db.execute(
        select(user_organizations.c.user_id).where(
            user_organizations.c.organization_id == organization_id,
            user_organizations.c.user_id == user_id,
        )
    )
    return result.first() is not None


async def add_member(db: AsyncSession, organization_id: str, user_id: str) -> bool:
    """Add a user to an organization with no roles. Returns False if already a member."""
    if await is_member(db, organization_id, user_id):
        return False
    await db.execute(insert(user_organizations).values(organization_id=organization_id, user_id=user_id))
    await db.commit()
    log.info(f"Added user {user_id} to org {organization_id}")
    return True


async def is_role_in_use(db: AsyncSession, role_id: str) -> bool:
    result = await db.execute(
        select(organization_user_roles.c.role_id)
        .where(organization_user_roles.c.role_id == role_id)
        .limit(1)
    )
    return result.first() is not None


async def get_member_role_ids(db: AsyncSession, organization_id: str, user_id: str) -> frozenset[str]:
    result = await db.execute(
        select(organization_user_roles.c.role_id).where(
            organization_user_roles.c.organization_id == organization_id,
            organization_user_roles.c.user_id == user_id,
        )
    )
    return frozenset(result.scalars().all())


async def load_principal(db: AsyncSession, organization_id: str, user_id: str) -> Principal:
    """
    Build the principal for one membership.

    Raises:
        MembershipNotFoundError: if the user does not belong to the organization
    """
    if not await is_member(db, organization_id, user_id):
        raise MembershipNotFoundError()
    role_ids = await get_member_role_ids(db, organization_id, user_id)
    return Principal(user_id=user_id, organization_id=organization_id, role_ids=role_ids)


async def _load_assignable_roles(db: AsyncSession, organization_id: str, role_ids: set[str]) -> list[Role]:
    """Roles must exist and belong to the organization or be shared templates."""
    if not role_ids:
        return []
    result = await db.execute(select(Role).where(Role.id.in_(role_ids)))
    roles = list(result.scalars().all())

    missing = role_ids - {role.id for role in roles}
    if missing:
        raise RoleNotFoundError(f"Role(s) not found: {', '.join(sorted(missing))}")

    for role in roles:
        if role.organization_id is not None and role.organization_id != organization_id:
            raise CrossOrganizationRoleError(f"Role '{role.role_name}' belongs to a different organization")
    return roles


async def _highest_privilege_ids(db: AsyncSession, organization_id: str) -> set[str]:
    result = await db.execute(
        select(Role.id).where(
            Role.role_name == HIGHEST_PRIVILEGE_ROLE,
            or_(Role.organization_id == organization_id, Role.organization_id.is_(None)),
        )
    )
    return set(result.scalars().all())


async def set_member_roles(
    db: AsyncSession,
    organization_id: str,
    user_id: str,
    role_ids: Iterable[str],
    assigned_by_id: Optional[str] = None,
    actor_permission_keys: Optional[frozenset[str]] = None,
) -> frozenset[str]:
    """
    Replace the set of roles a member holds. Order and duplicates are ignored.

    When actor_permission_keys is given the change is checked against the
    actor's keys: users.assign_roles is always required, and adding or
    removing the highest-privilege role also needs users.assign_district.
    Bootstrap code passes None.

    Raises:
        MembershipNotFoundError, RoleNotFoundError, CrossOrganizationRoleError,
        PermissionDeniedError
    """
    wanted = set(role_ids)

    if not await is_member(db, organization_id, user_id):
        raise MembershipNotFoundError()
    await _load_assignable_roles(db, organization_id, wanted)
    current = set(await get_member_role_ids(db, organization_id, user_id))

    if actor_permission_keys is not None:
        if USERS_ASSIGN_ROLES not in actor_permission_keys:
            raise PermissionDeniedError(f"Assigning roles requires {USERS_ASSIGN_ROLES}")
        changed = wanted ^ current
        if changed & await _highest_privilege_ids(db, organization_id) and USERS_ASSIGN_DISTRICT not in actor_permission_keys:
            raise PermissionDeniedError(f"Assigning the {HIGHEST_PRIVILEGE_ROLE} role requires {USERS_ASSIGN_DISTRICT}")

    to_remove = current - wanted
    to_add = wanted - current
    if to_remove:
        await db.execute(
            delete(organization_user_roles).where(
                organization_user_roles.c.organization_id == organization_id,
                organization_user_roles.c.user_id == user_id,
                organization_user_roles.c.role_id.in_(to_remove),
            )
        )
    if to_add:
        await db.execute(
            insert(organization_user_roles),
            [
                {
                    "organization_id": organization_id,
                    "user_id": user_id,
                    "role_id": role_id,
                    "assigned_by_id": assigned_by_id,
                }
                for role_id in to_add
            ],
        )
    await db.commit()

    log.info(f"User {user_id} in org {organization_id}: +{len(to_add)} -{len(to_remove)} roles")
    return frozenset(wanted)


async def add_member_role(
    db: AsyncSession,
    organization_id: str,
    user_id: str,
    role_id: str,
    assigned_by_id: Optional[str] = None,
    actor_permission_keys: Optional[frozenset[str]] = None,
) -> frozenset[str]:
    current = await get_member_role_ids(db, organization_id, user_id)
    return await set_member_roles(
        db, organization_id, user_id, current | {role_id},
        assigned_by_id=assigned_by_id,
        actor_permission_keys=actor_permission_keys,
    )


async def remove_member_role(
    db: AsyncSession,
    organization_id: str,
    user_id: str,
    role_id: str,
    actor_permission_keys: Optional[frozenset[str]] = None,
) -> frozenset[str]:
    current = await get_member_role_ids(db, organization_id, user_id)
    return await set_member_roles(
        db, organization_id, user_id, current - {role_id},
        actor_permission_keys=actor_permission_keys,
    )
