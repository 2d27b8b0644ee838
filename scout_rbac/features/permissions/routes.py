"""
Permission management API routes.

Mounted under /organizations/{organization_id}: the permission catalog, roles,
role grants, member role assignments and the caller's own permissions.
"""
from typing import Annotated, Dict, List
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from scout_rbac.core.database.engine import get_db
from scout_rbac.core.exceptions import RoleNotFoundError, SystemRoleProtectedError
from scout_rbac.features.permissions import assignments, grants, roles
from scout_rbac.features.permissions.audit import create_audit_log, list_audit_logs
from scout_rbac.features.permissions.catalog import group_permissions_by_category
from scout_rbac.features.permissions.constants import (
    ROLES_MANAGE,
    ROLES_VIEW,
    USERS_ASSIGN_DISTRICT,
    USERS_ASSIGN_ROLES,
)
from scout_rbac.features.permissions.dependencies import (
    get_access_context,
    require_any_permission,
    require_permission,
)
from scout_rbac.features.permissions.models import Role
from scout_rbac.features.permissions.schemas import (
    AccessContext,
    AssignPermissionToRole,
    AssignRolesToMember,
    AuditLogResponse,
    DataScopeUpdate,
    MemberRolesResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionResponse,
    ReplaceRolePermissions,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    RoleWithPermissions,
    UserPermissionsResponse,
)
from scout_rbac.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _get_organization_role(
    db: AsyncSession,
    organization_id: str,
    role_id: str,
    writable: bool = False,
) -> Role:
    """
    A role visible from the organization: its own or a shared template.

    Template roles are read-only from inside an organization.
    """
    role = await roles.get_role_by_id(db, role_id)
    if role is None or role.organization_id not in (None, organization_id):
        raise RoleNotFoundError()
    if writable and role.organization_id is None:
        raise SystemRoleProtectedError("Shared template roles cannot be modified from an organization")
    return role


async def _role_with_permissions(db: AsyncSession, role: Role) -> RoleWithPermissions:
    permissions = await grants.list_role_permissions(db, role.id)
    return RoleWithPermissions(
        **RoleResponse.model_validate(role).model_dump(),
        permissions=[PermissionResponse.model_validate(p) for p in permissions],
    )


# ============================================================================
# Permission Catalog
# ============================================================================

@router.get("/permissions", response_model=Dict[str, List[PermissionResponse]])
async def get_permission_catalog(
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(ROLES_VIEW))]
):
    """Permission catalog grouped by category."""
    grouped = await group_permissions_by_category(db)
    return {
        category: [PermissionResponse.model_validate(p) for p in permissions]
        for category, permissions in grouped.items()
    }


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    organization_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(ROLES_VIEW))]
):
    """List roles usable in the organization. The district role is hidden from callers who cannot assign it."""
    return await roles.list_roles(
        db,
        organization_id,
        include_highest_privilege=access.can(USERS_ASSIGN_DISTRICT),
    )


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    organization_id: str,
    role: RoleCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(ROLES_MANAGE))]
):
    """Create a custom role."""
    db_role = await roles.create_role(
        db,
        organization_id,
        role.role_name,
        role.display_name,
        data_scope=role.data_scope,
        description=role.description,
    )
    await create_audit_log(
        db,
        user_id=access.principal.user_id,
        action="create",
        resource_type="role",
        resource_id=db_role.id,
        organization_id=organization_id,
        details=role.model_dump(),
        request=request,
    )
    return db_role


@router.get("/roles/{role_id}", response_model=RoleWithPermissions)
async def get_role(
    organization_id: str,
    role_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(ROLES_VIEW))]
):
    role = await _get_organization_role(db, organization_id, role_id)
    return await _role_with_permissions(db, role)


@router.patch("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    organization_id: str,
    role_id: str,
    role_update: RoleUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(ROLES_MANAGE))]
):
    await _get_organization_role(db, organization_id, role_id, writable=True)
    role = await roles.update_role(db, role_id, role_update.display_name, role_update.description)
    await create_audit_log(
        db,
        user_id=access.principal.user_id,
        action="update",
        resource_type="role",
        resource_id=role_id,
        organization_id=organization_id,
        details=role_update.model_dump(exclude_unset=True),
        request=request,
    )
    return role


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    organization_id: str,
    role_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(ROLES_MANAGE))]
):
    """Delete a custom role. System roles and roles still held by a member are refused."""
    role = await _get_organization_role(db, organization_id, role_id, writable=True)
    role_name = role.role_name
    await roles.delete_role(db, role_id)
    await create_audit_log(
        db,
        user_id=access.principal.user_id,
        action="delete",
        resource_type="role",
        resource_id=role_id,
        organization_id=organization_id,
        details={"role_name": role_name},
        request=request,
    )


@router.put("/roles/{role_id}/scope", response_model=RoleResponse)
async def set_role_scope(
    organization_id: str,
    role_id: str,
    scope: DataScopeUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(ROLES_MANAGE))]
):
    await _get_organization_role(db, organization_id, role_id, writable=True)
    role = await roles.set_data_scope(db, role_id, scope.data_scope)
    await create_audit_log(
        db,
        user_id=access.principal.user_id,
        action="set_scope",
        resource_type="role",
        resource_id=role_id,
        organization_id=organization_id,
        details={"data_scope": role.data_scope},
        request=request,
    )
    return role


# ============================================================================
# Role Grant Routes
# ============================================================================

@router.post("/roles/{role_id}/permissions", response_model=RoleWithPermissions, status_code=status.HTTP_201_CREATED)
async def grant_permission_to_role(
    organization_id: str,
    role_id: str,
    grant: AssignPermissionToRole,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(ROLES_MANAGE))]
):
    role = await _get_organization_role(db, organization_id, role_id, writable=True)
    await grants.grant_permission(
        db, role_id, grant.permission_key, actor_permission_keys=access.permission_keys
    )
    await create_audit_log(
        db,
        user_id=access.principal.user_id,
        action="grant",
        resource_type="role",
        resource_id=role_id,
        organization_id=organization_id,
        details={"permission_key": grant.permission_key},
        request=request,
    )
    return await _role_with_permissions(db, role)


@router.delete("/roles/{role_id}/permissions/{permission_key}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_permission_from_role(
    organization_id: str,
    role_id: str,
    permission_key: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(ROLES_MANAGE))]
):
    await _get_organization_role(db, organization_id, role_id, writable=True)
    await grants.revoke_permission(db, role_id, permission_key)
    await create_audit_log(
        db,
        user_id=access.principal.user_id,
        action="revoke",
        resource_type="role",
        resource_id=role_id,
        organization_id=organization_id,
        details={"permission_key": permission_key},
        request=request,
    )


@router.put("/roles/{role_id}/permissions", response_model=RoleWithPermissions)
async def replace_role_permissions(
    organization_id: str,
    role_id: str,
    body: ReplaceRolePermissions,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(ROLES_MANAGE))]
):
    """Replace every grant of a role at once."""
    role = await _get_organization_role(db, organization_id, role_id, writable=True)
    await grants.set_role_permissions(
        db, role_id, body.permission_keys, actor_permission_keys=access.permission_keys
    )
    await create_audit_log(
        db,
        user_id=access.principal.user_id,
        action="replace_permissions",
        resource_type="role",
        resource_id=role_id,
        organization_id=organization_id,
        details={"permission_keys": sorted(set(body.permission_keys))},
        request=request,
    )
    return await _role_with_permissions(db, role)


# ============================================================================
# Member Role Routes
# ============================================================================

@router.get("/members/{user_id}/roles", response_model=MemberRolesResponse)
async def get_member_roles(
    organization_id: str,
    user_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_any_permission(ROLES_VIEW, USERS_ASSIGN_ROLES))]
):
    """Role ids a member holds. Readable by role viewers and by anyone who may assign roles."""
    principal = await assignments.load_principal(db, organization_id, user_id)
    return MemberRolesResponse(
        user_id=user_id,
        organization_id=organization_id,
        role_ids=sorted(principal.role_ids),
    )


@router.put("/members/{user_id}/roles", response_model=MemberRolesResponse)
async def set_member_roles(
    organization_id: str,
    user_id: str,
    body: AssignRolesToMember,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(USERS_ASSIGN_ROLES))]
):
    """Set the roles a member holds. Changing who holds the district role also needs users.assign_district."""
    role_ids = await assignments.set_member_roles(
        db,
        organization_id,
        user_id,
        body.role_ids,
        assigned_by_id=access.principal.user_id,
        actor_permission_keys=access.permission_keys,
    )
    await create_audit_log(
        db,
        user_id=access.principal.user_id,
        action="assign",
        resource_type="member",
        resource_id=user_id,
        organization_id=organization_id,
        details={"role_ids": sorted(role_ids)},
        request=request,
    )
    return MemberRolesResponse(user_id=user_id, organization_id=organization_id, role_ids=sorted(role_ids))


# ============================================================================
# Caller Permission Routes
# ============================================================================

@router.get("/me/permissions", response_model=UserPermissionsResponse)
async def get_my_permissions(
    organization_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(get_access_context)]
):
    """Everything the caller holds in this organization."""
    held_roles = await roles.get_roles_by_ids(db, access.principal.role_ids)
    return UserPermissionsResponse(
        user_id=access.principal.user_id,
        organization_id=organization_id,
        roles=[RoleResponse.model_validate(role) for role in held_roles],
        permissions=sorted(access.permission_keys),
        data_scope=access.data_scope,
    )


@router.post("/permissions/check", response_model=PermissionCheckResponse)
async def check_permission(
    check: PermissionCheckRequest,
    access: Annotated[AccessContext, Depends(get_access_context)]
):
    """Check whether the caller holds a permission key, and with which data scope."""
    return PermissionCheckResponse(
        has_permission=access.can(check.permission_key),
        data_scope=access.data_scope,
    )


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=List[AuditLogResponse])
async def get_audit_logs(
    organization_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(ROLES_MANAGE))],
    skip: int = 0,
    limit: int = 100,
):
    return await list_audit_logs(db, organization_id, skip=skip, limit=limit)
