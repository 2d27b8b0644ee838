"""
FastAPI dependencies for route protection.

Every guard works on the organization named in the path; there is no
"current organization" stored on the user.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from scout_rbac.core.database.engine import get_db
from scout_rbac.core.exceptions import MembershipNotFoundError
from scout_rbac.features.forms.schemas import FormCapabilities, FormCapability
from scout_rbac.features.forms.service import get_form_template
from scout_rbac.features.permissions.assignments import load_principal
from scout_rbac.features.permissions.evaluator import build_access_context, form_capabilities
from scout_rbac.features.permissions.schemas import AccessContext, Principal
from scout_rbac.features.users.dependencies import get_current_user
from scout_rbac.features.users.models import User
from scout_rbac.utils import get_logger


log = get_logger(__name__)


async def get_principal(
    organization_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Principal:
    """
    The current user's membership in the organization from the path.

    Raises:
        HTTPException: 403 if the user is not a member
    """
    try:
        return await load_principal(db, organization_id, current_user.id)
    except MembershipNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a member of this organization"
        )


async def get_access_context(
    principal: Annotated[Principal, Depends(get_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> AccessContext:
    return await build_access_context(db, principal)


def require_permission(*permission_keys: str):
    """
    FastAPI dependency requiring every listed permission key.

    Usage:
        @router.get("/roles")
        async def list_roles(access: AccessContext = Depends(require_permission("roles.view"))):
            # access.data_scope tells the query which rows to return
            ...

    Raises:
        HTTPException: 403 naming the missing keys
    """
    async def permission_dependency(
        access: Annotated[AccessContext, Depends(get_access_context)]
    ) -> AccessContext:
        missing = [key for key in permission_keys if not access.can(key)]
        if missing:
            log.debug(f"User {access.principal.user_id} missing {missing} in org {access.principal.organization_id}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: requires {', '.join(missing)}"
            )
        return access

    return permission_dependency


def require_any_permission(*permission_keys: str):
    """FastAPI dependency requiring at least one of the listed permission keys."""
    async def permission_dependency(
        access: Annotated[AccessContext, Depends(get_access_context)]
    ) -> AccessContext:
        if not any(access.can(key) for key in permission_keys):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: requires one of {', '.join(permission_keys)}"
            )
        return access

    return permission_dependency


def require_form_capability(capability: FormCapability):
    """
    FastAPI dependency requiring one capability on the form template in the path.

    Usage:
        @router.post("/forms/{form_template_id}/submissions")
        async def submit(caps: FormCapabilities = Depends(require_form_capability("submit"))):
            ...

    Raises:
        FormTemplateNotFoundError: 404 if the template is not in the organization
        HTTPException: 403 if no held role grants the capability
    """
    async def form_dependency(
        organization_id: str,
        form_template_id: str,
        principal: Annotated[Principal, Depends(get_principal)],
        db: Annotated[AsyncSession, Depends(get_db)]
    ) -> FormCapabilities:
        await get_form_template(db, organization_id, form_template_id)
        capabilities = await form_capabilities(db, organization_id, principal.role_ids, form_template_id)
        if not capabilities.allows(capability):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: cannot {capability} this form"
            )
        return capabilities

    return form_dependency
