"""
Pydantic schemas for permission management.

Request and response models for permissions, roles, assignments and audit logs,
plus the value objects passed between the evaluator and route guards.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from scout_rbac.features.permissions.models import DataScope


# ============================================================================
# Evaluator Value Objects
# ============================================================================

class Principal(BaseModel):
    """A user inside one organization membership, with the role ids held there."""
    user_id: str
    organization_id: str
    role_ids: frozenset[str] = frozenset()

    model_config = ConfigDict(frozen=True)


class RoleSnapshot(BaseModel):
    """What the evaluator needs to know about one role."""
    role_id: str
    organization_id: Optional[str]
    data_scope: DataScope
    permission_keys: frozenset[str] = frozenset()

    model_config = ConfigDict(frozen=True)


class AccessContext(BaseModel):
    """Result handed to a route once a guard let the principal through."""
    principal: Principal
    permission_keys: frozenset[str]
    data_scope: DataScope

    model_config = ConfigDict(frozen=True)

    def can(self, permission_key: str) -> bool:
        return permission_key in self.permission_keys


class AccessDecision(BaseModel):
    """Route-guard answer: allowed or not, and the scope to filter data with."""
    allowed: bool
    data_scope: DataScope


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionResponse(BaseModel):
    """Schema for permission response."""
    id: str
    key: str
    name: str
    category: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    role_name: str = Field(..., min_length=1, max_length=50, description="Role name, unique within the organization")
    display_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000, description="Role description")


class RoleCreate(RoleBase):
    """Schema for creating a new custom role."""
    data_scope: str = Field(DataScope.ORGANIZATION.value, description="'organization' or 'linked'")

    @field_validator('role_name')
    @classmethod
    def name_alphanumeric_underscore(cls, v: str) -> str:
        """Validate role name format."""
        if not v.replace('_', '').replace('-', '').isalnum():
            raise ValueError('Role name must contain only alphanumeric characters, underscores, and hyphens')
        return v.lower()


class RoleUpdate(BaseModel):
    """Schema for updating a role."""
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: str
    organization_id: Optional[str]
    is_system_role: bool
    data_scope: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleWithPermissions(RoleResponse):
    """Schema for role with permissions."""
    permissions: List[PermissionResponse] = []


class DataScopeUpdate(BaseModel):
    """Schema for changing a role's data scope."""
    data_scope: str


# ============================================================================
# Assignment Schemas
# ============================================================================

class AssignPermissionToRole(BaseModel):
    """Schema for granting a permission key to a role."""
    permission_key: str = Field(..., min_length=1, max_length=100)


class ReplaceRolePermissions(BaseModel):
    """Schema for replacing the full set of keys granted to a role."""
    permission_keys: List[str] = []


class AssignRolesToMember(BaseModel):
    """Schema for setting the roles a member holds in an organization."""
    role_ids: List[str] = Field(default_factory=list, description="Role IDs; order and duplicates are ignored")


class MemberRolesResponse(BaseModel):
    """Roles held by one member."""
    user_id: str
    organization_id: str
    role_ids: List[str]


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking if the caller has a permission."""
    permission_key: str


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    has_permission: bool
    data_scope: DataScope


class UserPermissionsResponse(BaseModel):
    """Everything the caller holds in an organization."""
    user_id: str
    organization_id: str
    roles: List[RoleResponse] = []
    permissions: List[str] = []
    data_scope: DataScope


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    organization_id: Optional[str]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
