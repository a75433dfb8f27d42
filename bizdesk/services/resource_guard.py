"""One ownership guard shared by every workspace-scoped resource."""

from typing import Generic, TypeVar

from bizdesk.core.exceptions import NotFoundException, ResourceAccessDeniedException
from bizdesk.models.action_context import ServerActionContext
from bizdesk.models.permission import permission_for
from bizdesk.repositories.scoped_repository import WorkspaceScopedRepository

ModelT = TypeVar("ModelT")


class ScopedResourceGuard(Generic[ModelT]):
    """
    Confirms a referenced row belongs to the caller's workspace and that the
    caller's role may perform ``action`` on it.

    A row in another workspace is reported exactly like a missing row, so
    other tenants' ids cannot be discovered.
    """

    def __init__(self, repo: WorkspaceScopedRepository[ModelT], resource: str, label: str):
        self.repo = repo
        self.resource = resource
        self.label = label

    def get(self, context: ServerActionContext, resource_id: int) -> ModelT | None:
        workspace = context.require_workspace()
        return self.repo.get_by_id_and_workspace(resource_id, workspace.id)

    def require_access(self, context: ServerActionContext, resource_id: int, action: str = "read") -> ModelT:
        """
        Load a row the caller may act on.

        Raises:
            WorkspaceRequiredException: If no workspace was resolved
            ResourceAccessDeniedException: If the role lacks ``resource:action``
            NotFoundException: If the row is missing or in another workspace
        """
        context.require_workspace()
        permission = permission_for(self.resource, action)
        if not context.has_permission(permission):
            raise ResourceAccessDeniedException(
                f"Your role cannot {action} {self.resource} (requires {permission.value})"
            )
        obj = self.get(context, resource_id)
        if obj is None:
            raise NotFoundException(f"{self.label} not found")
        return obj
