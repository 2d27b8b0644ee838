"""
Role -> permission grants.

Every write commits, then drops the role's cached snapshot before returning.
"""
from typing import AbstractSet, Iterable, Optional
from sqlalchemy import select, delete, insert
from sqlalchemy.ext.asyncio import AsyncSession

from scout_rbac.core.exceptions import PermissionDeniedError, SystemRoleProtectedError
from scout_rbac.features.permissions.cache import role_cache
from scout_rbac.features.permissions.catalog import get_permissions_by_keys
from scout_rbac.features.permissions.models import Permission, Role, role_permissions
from scout_rbac.features.permissions.roles import require_role
from scout_rbac.utils import get_logger


log = get_logger(__name__)


def _check_editable(role: Role, allow_system: bool) -> None:
    if role.is_system_role and not allow_system:
        raise SystemRoleProtectedError(f"Cannot modify permissions of system role '{role.role_name}'")


def _check_actor_holds(permission_keys: Iterable[str], actor_permission_keys: Optional[AbstractSet[str]]) -> None:
    """A caller may only hand out keys they hold themselves."""
    if actor_permission_keys is None:
        return
    missing = sorted(set(permission_keys) - set(actor_permission_keys))
    if missing:
        raise PermissionDeniedError(f"Cannot grant permissions you do not hold: {', '.join(missing)}")


async def list_role_permissions(db: AsyncSession, role_id: str) -> list[Permission]:
    result = await db.execute(
        select(Permission)
        .join(role_permissions, role_permissions.c.permission_id == Permission.id)
        .where(role_permissions.c.role_id == role_id)
        .order_by(Permission.category, Permission.key)
    )
    return list(result.scalars().all())


async def grant_permission(
    db: AsyncSession,
    role_id: str,
    permission_key: str,
    allow_system: bool = False,
    actor_permission_keys: Optional[AbstractSet[str]] = None,
) -> bool:
    """
    Grant a catalog permission to a role.

    Returns:
        True if the grant was added, False if the role already had it

    Raises:
        RoleNotFoundError, UnknownPermissionError, SystemRoleProtectedError,
        PermissionDeniedError (when actor_permission_keys lacks the key)
    """
    role = await require_role(db, role_id)
    _check_editable(role, allow_system)
    permission = (await get_permissions_by_keys(db, {permission_key}))[permission_key]
    _check_actor_holds({permission_key}, actor_permission_keys)

    existing = await db.execute(
        select(role_permissions.c.role_id).where(
            role_permissions.c.role_id == role_id,
            role_permissions.c.permission_id == permission.id,
        )
    )
    if existing.first() is not None:
        return False

    await db.execute(insert(role_permissions).values(role_id=role_id, permission_id=permission.id))
    await db.commit()
    role_cache.invalidate(role_id)

    log.debug(f"Granted {permission_key} to role '{role.role_name}'")
    return True


async def revoke_permission(
    db: AsyncSession,
    role_id: str,
    permission_key: str,
    allow_system: bool = False,
) -> bool:
    """Remove a grant. Returns False if the role did not hold it."""
    role = await require_role(db, role_id)
    _check_editable(role, allow_system)
    permission = (await get_permissions_by_keys(db, {permission_key}))[permission_key]

    result = await db.execute(
        delete(role_permissions).where(
            role_permissions.c.role_id == role_id,
            role_permissions.c.permission_id == permission.id,
        )
    )
    await db.commit()
    role_cache.invalidate(role_id)

    log.debug(f"Revoked {permission_key} from role '{role.role_name}'")
    return result.rowcount > 0


async def set_role_permissions(
    db: AsyncSession,
    role_id: str,
    permission_keys: Iterable[str],
    allow_system: bool = False,
    actor_permission_keys: Optional[AbstractSet[str]] = None,
) -> list[Permission]:
    """
    Replace the full set of keys granted to a role in one transaction.

    All keys are validated before anything is written, so an unknown key
    leaves the existing grants untouched.
    With actor_permission_keys, keys the role does not already have must be
    held by the caller.
    """
    role = await require_role(db, role_id)
    _check_editable(role, allow_system)
    permissions = await get_permissions_by_keys(db, set(permission_keys))
    current = {p.key for p in await list_role_permissions(db, role_id)}
    _check_actor_holds(set(permissions) - current, actor_permission_keys)

    await db.execute(delete(role_permissions).where(role_permissions.c.role_id == role_id))
    if permissions:
        await db.execute(
            insert(role_permissions),
            [{"role_id": role_id, "permission_id": p.id} for p in permissions.values()],
        )
    await db.commit()
    role_cache.invalidate(role_id)

    log.info(f"Set {len(permissions)} permissions on role '{role.role_name}'")
    return sorted(permissions.values(), key=lambda p: (p.category, p.key))
