"""
Pydantic schemas for form templates and form permissions.
"""
from datetime import datetime
from typing import Iterable, Literal
from pydantic import BaseModel, Field, ConfigDict


FormCapability = Literal["view", "submit", "edit", "approve"]


class FormCapabilities(BaseModel):
    """The four independent capabilities a principal holds on one form template."""
    view: bool = False
    submit: bool = False
    edit: bool = False
    approve: bool = False

    model_config = ConfigDict(frozen=True)

    def allows(self, capability: FormCapability) -> bool:
        return bool(getattr(self, capability))

    def merge(self, other: "FormCapabilities") -> "FormCapabilities":
        """Flag-by-flag OR."""
        return FormCapabilities(
            view=self.view or other.view,
            submit=self.submit or other.submit,
            edit=self.edit or other.edit,
            approve=self.approve or other.approve,
        )

    @classmethod
    def full(cls) -> "FormCapabilities":
        return cls(view=True, submit=True, edit=True, approve=True)

    @classmethod
    def none(cls) -> "FormCapabilities":
        return cls()

    @classmethod
    def union(cls, items: Iterable["FormCapabilities"]) -> "FormCapabilities":
        merged = cls()
        for item in items:
            merged = merged.merge(item)
        return merged


# ============================================================================
# Form Template Schemas
# ============================================================================

class FormTemplateCreate(BaseModel):
    """Schema for creating a form template."""
    form_type: str = Field(..., min_length=1, max_length=100, description="Stable form identifier, e.g. 'risk_acceptance'")
    display_name: str = Field(..., min_length=1, max_length=255)
    category: str | None = Field(
        None,
        max_length=50,
        description="organization, participant, approval or general; derived from form_type when omitted"
    )


class FormTemplateResponse(BaseModel):
    """Schema for form template response."""
    id: str
    organization_id: str
    form_type: str
    display_name: str
    category: str | None
    version: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FormTemplateWithCapabilities(FormTemplateResponse):
    """Form template together with the caller's capabilities on it."""
    capabilities: FormCapabilities


# ============================================================================
# Form Permission Schemas
# ============================================================================

class FormPermissionUpsert(BaseModel):
    """Schema for setting the capability matrix of one role on one form."""
    form_template_id: str
    role_id: str
    can_view: bool = False
    can_submit: bool = False
    can_edit: bool = False
    can_approve: bool = False


class FormPermissionResponse(BaseModel):
    """Schema for a stored form permission row."""
    id: str
    form_template_id: str
    role_id: str
    can_view: bool
    can_submit: bool
    can_edit: bool
    can_approve: bool

    model_config = ConfigDict(from_attributes=True)


class FormPermissionMatrixEntry(BaseModel):
    """One cell of the organization's form x role matrix; missing grants read as false."""
    form_template_id: str
    form_type: str
    form_display_name: str
    role_id: str
    role_name: str
    role_display_name: str
    can_view: bool = False
    can_submit: bool = False
    can_edit: bool = False
    can_approve: bool = False
