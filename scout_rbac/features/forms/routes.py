"""
Form template and form permission API routes.

Mounted under /organizations/{organization_id}.
"""
from typing import Annotated, List
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from scout_rbac.core.database.engine import get_db
from scout_rbac.features.forms import service
from scout_rbac.features.forms.schemas import (
    FormCapabilities,
    FormPermissionMatrixEntry,
    FormPermissionResponse,
    FormPermissionUpsert,
    FormTemplateCreate,
    FormTemplateResponse,
    FormTemplateWithCapabilities,
)
from scout_rbac.features.permissions.audit import create_audit_log
from scout_rbac.features.permissions.constants import FORMS_CREATE, FORMS_MANAGE
from scout_rbac.features.permissions.dependencies import (
    get_principal,
    require_form_capability,
    require_permission,
)
from scout_rbac.features.permissions.evaluator import form_capabilities, list_form_capabilities
from scout_rbac.features.permissions.schemas import AccessContext, Principal


router = APIRouter()


@router.post("/forms", response_model=FormTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_form_template(
    organization_id: str,
    form: FormTemplateCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(FORMS_CREATE))]
):
    """Create a form template; default grants are added in the same transaction."""
    template = await service.create_form_template(
        db, organization_id, form.form_type, form.display_name, category=form.category
    )
    await create_audit_log(
        db,
        user_id=access.principal.user_id,
        action="create",
        resource_type="form_template",
        resource_id=template.id,
        organization_id=organization_id,
        details=form.model_dump(),
        request=request,
    )
    return template


@router.get("/forms", response_model=List[FormTemplateWithCapabilities])
async def list_viewable_forms(
    organization_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_principal)]
):
    """Form templates the caller can view, each with the caller's capabilities."""
    capabilities = await list_form_capabilities(db, organization_id, principal.role_ids)
    return [
        FormTemplateWithCapabilities(
            **FormTemplateResponse.model_validate(template).model_dump(),
            capabilities=capabilities[template.id],
        )
        for template in await service.list_form_templates(db, organization_id)
        if capabilities.get(template.id, FormCapabilities.none()).view
    ]


@router.get("/forms/{form_template_id}", response_model=FormTemplateWithCapabilities)
async def get_form_template(
    organization_id: str,
    form_template_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    capabilities: Annotated[FormCapabilities, Depends(require_form_capability("view"))]
):
    template = await service.get_form_template(db, organization_id, form_template_id)
    return FormTemplateWithCapabilities(
        **FormTemplateResponse.model_validate(template).model_dump(),
        capabilities=capabilities,
    )


@router.get("/forms/{form_template_id}/capabilities", response_model=FormCapabilities)
async def get_form_capabilities(
    organization_id: str,
    form_template_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_principal)]
):
    """The caller's four flags on a form; all false when no held role has a grant."""
    await service.get_form_template(db, organization_id, form_template_id)
    return await form_capabilities(db, organization_id, principal.role_ids, form_template_id)


@router.get("/form-permissions", response_model=List[FormPermissionMatrixEntry])
async def get_form_permission_matrix(
    organization_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(FORMS_MANAGE))]
):
    return await service.list_form_permission_matrix(db, organization_id)


@router.put("/form-permissions", response_model=FormPermissionResponse)
async def upsert_form_permission(
    organization_id: str,
    body: FormPermissionUpsert,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    access: Annotated[AccessContext, Depends(require_permission(FORMS_MANAGE))]
):
    """Set all four flags of one role on one form."""
    grant = await service.set_form_permission(
        db,
        organization_id,
        body.form_template_id,
        body.role_id,
        can_view=body.can_view,
        can_submit=body.can_submit,
        can_edit=body.can_edit,
        can_approve=body.can_approve,
    )
    await create_audit_log(
        db,
        user_id=access.principal.user_id,
        action="update",
        resource_type="form_permission",
        resource_id=grant.id,
        organization_id=organization_id,
        details=body.model_dump(),
        request=request,
    )
    return grant
