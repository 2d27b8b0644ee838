"""
Permission evaluator.

Answers three questions for a principal's role set inside one organization:
does it hold a permission key, which data scope applies, and which form
capabilities it has on a form template.

Roles are additive: keys are unioned, the most permissive scope wins and form
flags are OR-ed one by one. The evaluator only reads. An empty role set gets
the most restrictive answer, and role ids that no longer exist or that belong
to another organization are skipped with a warning instead of failing the
check. Storage errors propagate.
"""
from typing import Iterable
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scout_rbac.features.forms.models import FormPermission, FormTemplate
from scout_rbac.features.forms.schemas import FormCapabilities
from scout_rbac.features.permissions.cache import role_cache
from scout_rbac.features.permissions.models import DataScope, Permission, Role, role_permissions
from scout_rbac.features.permissions.schemas import AccessContext, AccessDecision, Principal, RoleSnapshot
from scout_rbac.utils import get_logger


log = get_logger(__name__)


def _stored_scope(role: Role) -> DataScope:
    try:
        return DataScope(role.data_scope)
    except ValueError:
        log.warning(f"Role {role.id} has unknown data scope {role.data_scope!r}; treating as linked")
        return DataScope.LINKED


async def _fetch_snapshots(db: AsyncSession, role_ids: set[str]) -> dict[str, RoleSnapshot]:
    result = await db.execute(select(Role).where(Role.id.in_(role_ids)))
    roles = list(result.scalars().all())
    if not roles:
        return {}

    keys: dict[str, set[str]] = {role.id: set() for role in roles}
    grants = await db.execute(
        select(role_permissions.c.role_id, Permission.key)
        .join(Permission, Permission.id == role_permissions.c.permission_id)
        .where(role_permissions.c.role_id.in_(keys.keys()))
    )
    for role_id, key in grants.all():
        keys[role_id].add(key)

    return {
        role.id: RoleSnapshot(
            role_id=role.id,
            organization_id=role.organization_id,
            data_scope=_stored_scope(role),
            permission_keys=frozenset(keys[role.id]),
        )
        for role in roles
    }


async def load_role_snapshots(
    db: AsyncSession,
    organization_id: str,
    role_ids: Iterable[str],
) -> list[RoleSnapshot]:
    """
    Snapshots of the held roles that are valid in organization_id.

    Unknown role ids and roles owned by another organization are dropped.
    Shared template roles (no organization) are valid everywhere.
    """
    wanted = set(role_ids)
    if not wanted:
        return []

    token = role_cache.begin_read()
    snapshots: dict[str, RoleSnapshot] = {}
    misses: set[str] = set()
    for role_id in wanted:
        cached = role_cache.get(role_id)
        if cached is None:
            misses.add(role_id)
        else:
            snapshots[role_id] = cached

    if misses:
        loaded = await _fetch_snapshots(db, misses)
        for snapshot in loaded.values():
            role_cache.store(snapshot, token)
        snapshots.update(loaded)

    stale = wanted - snapshots.keys()
    if stale:
        log.warning(f"Skipping unknown role id(s) in org {organization_id}: {sorted(stale)}")

    valid = []
    for role_id in sorted(snapshots):
        snapshot = snapshots[role_id]
        if snapshot.organization_id is not None and snapshot.organization_id != organization_id:
            log.warning(f"Skipping role {role_id} from org {snapshot.organization_id} while evaluating org {organization_id}")
            continue
        valid.append(snapshot)
    return valid


def union_permission_keys(snapshots: Iterable[RoleSnapshot]) -> frozenset[str]:
    keys: set[str] = set()
    for snapshot in snapshots:
        keys |= snapshot.permission_keys
    return frozenset(keys)


def resolve_data_scope(snapshots: Iterable[RoleSnapshot]) -> DataScope:
    """ORGANIZATION if any role has it, LINKED otherwise (including no roles)."""
    if any(snapshot.data_scope == DataScope.ORGANIZATION for snapshot in snapshots):
        return DataScope.ORGANIZATION
    return DataScope.LINKED


def merge_form_grants(grants: Iterable[FormPermission]) -> FormCapabilities:
    return FormCapabilities.union(
        FormCapabilities(
            view=grant.can_view,
            submit=grant.can_submit,
            edit=grant.can_edit,
            approve=grant.can_approve,
        )
        for grant in grants
    )


async def get_permission_keys(db: AsyncSession, organization_id: str, role_ids: Iterable[str]) -> frozenset[str]:
    return union_permission_keys(await load_role_snapshots(db, organization_id, role_ids))


async def has_permission(
    db: AsyncSession,
    organization_id: str,
    role_ids: Iterable[str],
    permission_key: str,
) -> bool:
    """
    Check whether any held role grants permission_key.

    Usage:
        if await has_permission(db, org_id, principal.role_ids, "finance.view"):
            ...
    """
    return permission_key in await get_permission_keys(db, organization_id, role_ids)


async def has_all_permissions(
    db: AsyncSession,
    organization_id: str,
    role_ids: Iterable[str],
    permission_keys: Iterable[str],
) -> bool:
    held = await get_permission_keys(db, organization_id, role_ids)
    return set(permission_keys) <= held


async def has_any_permission(
    db: AsyncSession,
    organization_id: str,
    role_ids: Iterable[str],
    permission_keys: Iterable[str],
) -> bool:
    held = await get_permission_keys(db, organization_id, role_ids)
    return not held.isdisjoint(permission_keys)


async def effective_scope(db: AsyncSession, organization_id: str, role_ids: Iterable[str]) -> DataScope:
    return resolve_data_scope(await load_role_snapshots(db, organization_id, role_ids))


async def _valid_role_ids(db: AsyncSession, organization_id: str, role_ids: Iterable[str]) -> list[str]:
    return [snapshot.role_id for snapshot in await load_role_snapshots(db, organization_id, role_ids)]


async def form_capabilities(
    db: AsyncSession,
    organization_id: str,
    role_ids: Iterable[str],
    form_template_id: str,
) -> FormCapabilities:
    """
    Capabilities on one form template, each flag OR-ed across the held roles' grants.

    A template from another organization yields no capabilities.
    """
    valid_ids = await _valid_role_ids(db, organization_id, role_ids)
    if not valid_ids:
        return FormCapabilities.none()

    result = await db.execute(
        select(FormPermission)
        .join(FormTemplate, FormTemplate.id == FormPermission.form_template_id)
        .where(
            FormPermission.form_template_id == form_template_id,
            FormTemplate.organization_id == organization_id,
            FormPermission.role_id.in_(valid_ids),
        )
    )
    return merge_form_grants(result.scalars().all())


async def list_form_capabilities(
    db: AsyncSession,
    organization_id: str,
    role_ids: Iterable[str],
) -> dict[str, FormCapabilities]:
    """Capabilities on every form template of the organization, keyed by template id."""
    templates = await db.execute(
        select(FormTemplate.id).where(FormTemplate.organization_id == organization_id)
    )
    capabilities = {template_id: FormCapabilities.none() for template_id in templates.scalars().all()}

    valid_ids = await _valid_role_ids(db, organization_id, role_ids)
    if not valid_ids or not capabilities:
        return capabilities

    result = await db.execute(
        select(FormPermission)
        .join(FormTemplate, FormTemplate.id == FormPermission.form_template_id)
        .where(
            FormTemplate.organization_id == organization_id,
            FormPermission.role_id.in_(valid_ids),
        )
    )
    for grant in result.scalars().all():
        capabilities[grant.form_template_id] = capabilities[grant.form_template_id].merge(
            merge_form_grants([grant])
        )
    return capabilities


async def build_access_context(db: AsyncSession, principal: Principal) -> AccessContext:
    """Everything a route needs about the principal, loaded with one snapshot pass."""
    snapshots = await load_role_snapshots(db, principal.organization_id, principal.role_ids)
    return AccessContext(
        principal=principal,
        permission_keys=union_permission_keys(snapshots),
        data_scope=resolve_data_scope(snapshots),
    )


async def evaluate_access(
    db: AsyncSession,
    principal: Principal,
    permission_keys: Iterable[str],
    require_all: bool = True,
) -> AccessDecision:
    """
    Route-guard decision: allowed plus the scope downstream queries filter with.

    require_all=False allows the principal when any one of the keys is held.
    """
    required = set(permission_keys)
    context = await build_access_context(db, principal)
    if require_all:
        allowed = required <= context.permission_keys
    else:
        allowed = not context.permission_keys.isdisjoint(required)

    if not allowed:
        log.debug(f"User {principal.user_id} denied {sorted(required)} in org {principal.organization_id}")
    return AccessDecision(allowed=allowed, data_scope=context.data_scope)
