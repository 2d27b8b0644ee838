"""
Access-control error taxonomy.

Write-time errors are raised by the role, grant, assignment and form services and
surface unchanged to the administrative caller. The evaluator never raises them.
Each error carries the HTTP status the application handler maps it to.
"""
from fastapi import status


class AccessControlError(Exception):
    """Base class for all access-control write errors."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Access control error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# Configuration errors
class DuplicateRoleError(AccessControlError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Role with this name already exists in the organization"


class InvalidScopeError(AccessControlError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Data scope must be 'organization' or 'linked'"


class UnknownPermissionError(AccessControlError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Permission key is not in the catalog"


class DuplicateFormTemplateError(AccessControlError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Form type already exists in the organization"


# Referential-integrity errors
class RoleNotFoundError(AccessControlError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Role not found"


class RoleInUseError(AccessControlError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Role is still assigned to at least one member"


class SystemRoleProtectedError(AccessControlError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "System roles cannot be deleted or modified"


class CrossOrganizationRoleError(AccessControlError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Role belongs to a different organization"


class FormTemplateNotFoundError(AccessControlError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Form not found"


class MembershipNotFoundError(AccessControlError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "User is not a member of this organization"


# Administrative authorization
class PermissionDeniedError(AccessControlError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient permissions"
