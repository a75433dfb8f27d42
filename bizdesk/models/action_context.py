"""Per-invocation context for workspace-scoped actions."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from bizdesk.core.exceptions import WorkspaceRequiredException
from bizdesk.models.role import WorkspaceRole
from bizdesk.models.permission import Permission, has_permission, has_required_role

if TYPE_CHECKING:
    from bizdesk.services.audit_logger import AuditLogger
    from bizdesk.services.security_service import SecurityService


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity resolved from the bearer token (local user id plus provider id)."""

    id: int
    auth_user_id: str
    email: str | None = None


@dataclass(frozen=True)
class ResolvedWorkspace:
    """Workspace plus the caller's role in it, resolved fresh for every invocation."""

    id: int
    slug: str
    name: str
    role: WorkspaceRole


@dataclass(frozen=True)
class RequestMetadata:
    """Requester details recorded on audit rows."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class ServerActionContext:
    """
    Everything a business handler may use during one action invocation.

    Built by the action executor after authentication and workspace
    resolution, and discarded when the invocation returns. It is never
    cached or shared between invocations, so a role change takes effect on
    the very next call.

    Attributes:
        user: The authenticated caller
        db: Session backing this invocation
        workspace: Resolved workspace and role (None for workspace-less actions)
        request: IP / user agent of the caller
        audit_logger: The executor's audit logger, for handlers that write or read the trail
        security: The executor's security service
    """

    user: AuthenticatedUser
    db: Session
    workspace: ResolvedWorkspace | None = None
    request: RequestMetadata = field(default_factory=RequestMetadata)
    audit_logger: "AuditLogger | None" = None
    security: "SecurityService | None" = None
    old_values: Any = None
    new_values: Any = None

    @property
    def role(self) -> WorkspaceRole | None:
        return self.workspace.role if self.workspace else None

    def require_workspace(self) -> ResolvedWorkspace:
        """
        Resolved workspace for handlers that cannot run without one.

        Raises:
            WorkspaceRequiredException: If no workspace was resolved
        """
        if self.workspace is None:
            raise WorkspaceRequiredException("Workspace context is required")
        return self.workspace

    def has_permission(self, permission: Permission) -> bool:
        """False when there is no workspace, otherwise the role table decides."""
        if self.workspace is None:
            return False
        return has_permission(self.workspace.role, permission)

    def has_required_role(self, required_role: WorkspaceRole) -> bool:
        if self.workspace is None:
            return False
        return has_required_role(self.workspace.role, required_role)

    def is_admin(self) -> bool:
        return self.role == WorkspaceRole.ADMIN

    def record_change(self, old_values: Any = None, new_values: Any = None) -> None:
        """Attach before/after snapshots for the executor's audit entry."""
        self.old_values = old_values
        self.new_values = new_values

    def __repr__(self) -> str:
        workspace_id = self.workspace.id if self.workspace else None
        role = self.role.value if self.role else None
        return f"<ServerActionContext(user_id={self.user.id}, workspace_id={workspace_id}, role={role})>"
