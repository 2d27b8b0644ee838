"""
Role registry: CRUD over organization roles and lookup of shared template roles.
"""
from typing import Iterable, Optional
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from scout_rbac.core.exceptions import (
    DuplicateRoleError,
    InvalidScopeError,
    RoleInUseError,
    RoleNotFoundError,
    SystemRoleProtectedError,
)
from scout_rbac.features.permissions.assignments import is_role_in_use
from scout_rbac.features.permissions.cache import role_cache
from scout_rbac.features.permissions.constants import HIGHEST_PRIVILEGE_ROLE
from scout_rbac.features.permissions.models import DataScope, Role
from scout_rbac.utils import get_logger


log = get_logger(__name__)


def parse_scope(value: DataScope | str) -> DataScope:
    """
    Validate a data scope written by an administrator.

    Only the exact values 'organization' and 'linked' are accepted; nothing is coerced.

    Raises:
        InvalidScopeError: for any other value
    """
    if isinstance(value, DataScope):
        return value
    try:
        return DataScope(value)
    except ValueError:
        raise InvalidScopeError(f"Invalid data scope {value!r}: must be 'organization' or 'linked'")


def _organization_clause(organization_id: Optional[str]):
    if organization_id is None:
        return Role.organization_id.is_(None)
    return Role.organization_id == organization_id


async def get_role(db: AsyncSession, organization_id: Optional[str], role_name: str) -> Optional[Role]:
    """Look up a role by (organization, name). organization_id=None looks up a template role."""
    result = await db.execute(
        select(Role).where(_organization_clause(organization_id), Role.role_name == role_name)
    )
    return result.scalar_one_or_none()


async def get_role_by_id(db: AsyncSession, role_id: str) -> Optional[Role]:
    result = await db.execute(select(Role).where(Role.id == role_id))
    return result.scalar_one_or_none()


async def get_roles_by_ids(db: AsyncSession, role_ids: Iterable[str]) -> list[Role]:
    result = await db.execute(
        select(Role)
        .where(Role.id.in_(set(role_ids)))
        .order_by(Role.is_system_role.desc(), Role.role_name)
    )
    return list(result.scalars().all())


async def require_role(db: AsyncSession, role_id: str) -> Role:
    role = await get_role_by_id(db, role_id)
    if role is None:
        raise RoleNotFoundError(f"Role {role_id} not found")
    return role


async def create_role(
    db: AsyncSession,
    organization_id: Optional[str],
    role_name: str,
    display_name: str,
    data_scope: DataScope | str = DataScope.ORGANIZATION,
    description: Optional[str] = None,
    is_system_role: bool = False,
) -> Role:
    """
    Create a role in an organization (or a shared template role when organization_id is None).

    Raises:
        InvalidScopeError: if data_scope is not 'organization' or 'linked'
        DuplicateRoleError: if the organization already has a role with this name
    """
    scope = parse_scope(data_scope)

    # SQLite and PostgreSQL treat NULLs as distinct in unique constraints,
    # so template-role duplicates are only caught here.
    if await get_role(db, organization_id, role_name) is not None:
        raise DuplicateRoleError(f"Role '{role_name}' already exists in this organization")

    role = Role(
        organization_id=organization_id,
        role_name=role_name,
        display_name=display_name,
        description=description,
        is_system_role=is_system_role,
        data_scope=scope.value,
    )
    db.add(role)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateRoleError(f"Role '{role_name}' already exists in this organization")
    await db.refresh(role)

    log.info(f"Created role '{role_name}' ({scope.value}) in org {organization_id}")
    return role


async def list_roles(
    db: AsyncSession,
    organization_id: str,
    include_highest_privilege: bool = True,
) -> list[Role]:
    """
    Roles usable in an organization: its own roles plus shared template roles.
    A template role is left out when the organization has its own role of the same name.

    include_highest_privilege=False hides the district role from callers who may not assign it.
    """
    stmt = (
        select(Role)
        .where(or_(Role.organization_id == organization_id, Role.organization_id.is_(None)))
        .order_by(Role.is_system_role.desc(), Role.role_name)
    )
    if not include_highest_privilege:
        stmt = stmt.where(Role.role_name != HIGHEST_PRIVILEGE_ROLE)
    result = await db.execute(stmt)
    found = list(result.scalars().all())
    own_names = {role.role_name for role in found if role.organization_id is not None}
    return [role for role in found if role.organization_id is not None or role.role_name not in own_names]


async def update_role(
    db: AsyncSession,
    role_id: str,
    display_name: Optional[str] = None,
    description: Optional[str] = None,
) -> Role:
    role = await require_role(db, role_id)
    if display_name is not None:
        role.display_name = display_name
    if description is not None:
        role.description = description
    await db.commit()
    await db.refresh(role)
    log.info(f"Updated role {role_id}")
    return role


async def delete_role(db: AsyncSession, role_id: str) -> None:
    """
    Delete a custom role.

    Grants and form grants cascade with the role.

    Raises:
        RoleNotFoundError: if the role does not exist
        SystemRoleProtectedError: if the role is a seed-provided system role
        RoleInUseError: if any member still holds the role
    """
    role = await require_role(db, role_id)

    if role.is_system_role:
        raise SystemRoleProtectedError(f"System role '{role.role_name}' cannot be deleted")

    if await is_role_in_use(db, role_id):
        raise RoleInUseError(f"Role '{role.role_name}' is still assigned to at least one member")

    await db.delete(role)
    await db.commit()
    role_cache.invalidate(role_id)

    log.info(f"Deleted role '{role.role_name}' ({role_id})")


async def set_data_scope(db: AsyncSession, role_id: str, scope: DataScope | str) -> Role:
    """
    Change which data slice holders of a role see.

    Raises:
        InvalidScopeError: if scope is not exactly 'organization' or 'linked'
        RoleNotFoundError: if the role does not exist
    """
    new_scope = parse_scope(scope)
    role = await require_role(db, role_id)

    role.data_scope = new_scope.value
    await db.commit()
    role_cache.invalidate(role_id)
    await db.refresh(role)

    log.info(f"Set data scope of role '{role.role_name}' to {new_scope.value}")
    return role
