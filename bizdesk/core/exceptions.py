class BizDeskException(Exception):
    """
    Base exception for BizDesk.

    Every subclass carries a machine-readable ``code`` and the ``field`` the
    error relates to, so the action executor can turn it into a structured
    ``{field, message, code}`` error without string matching.
    """

    code = "error"
    field = "general"

    def __init__(self, message: str, *, code: str | None = None, field: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if field is not None:
            self.field = field


class UnauthorizedException(BizDeskException):
    """Raised when JWT validation fails or no identity is present"""

    code = "auth_required"
    field = "auth"


class NotFoundException(BizDeskException):
    """Raised when resource not found (or not visible in the caller's workspace)"""

    code = "resource_not_found"
    field = "resource"


class ForbiddenException(BizDeskException):
    """Raised when the caller's role does not allow the operation"""

    code = "forbidden"
    field = "permissions"


class ValidationException(BizDeskException):
    """Raised for business logic validation errors"""

    code = "validation_error"


class ConflictException(BizDeskException):
    """Raised when a concurrent write invalidated the data we read"""

    code = "concurrent_modification"


class WorkspaceRequiredException(ForbiddenException):
    """Raised when an operation needs a workspace and none was supplied"""

    code = "workspace_required"
    field = "workspace"


class WorkspaceNotFoundException(NotFoundException):
    """
    Raised when the workspace does not exist OR the user is not a member.

    Both cases share one code so workspace existence is never leaked.
    """

    code = "workspace_not_found"
    field = "workspace"


class ResourceAccessDeniedException(ForbiddenException):
    """Raised when the role lacks the permission for a resource operation"""

    code = "resource_access_denied"
    field = "resource"


class SelfModificationException(ForbiddenException):
    """Raised when a member tries to change or remove their own membership"""

    code = "self_modification_forbidden"
    field = "user_id"
