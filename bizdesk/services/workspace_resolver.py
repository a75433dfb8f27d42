from typing import Any

from sqlalchemy.orm import Session

from bizdesk.core.exceptions import WorkspaceRequiredException, WorkspaceNotFoundException
from bizdesk.models.action_context import ResolvedWorkspace
from bizdesk.repositories.workspace_membership_repository import WorkspaceMembershipRepository


class WorkspaceResolver:
    """
    Resolve the workspace and the caller's role for one invocation.

    Always reads the membership table; nothing is cached, so a demoted or
    removed member is rejected on the very next call.
    """

    def __init__(self, db: Session):
        self.membership_repo = WorkspaceMembershipRepository(db)

    def resolve(
        self,
        user_id: int,
        workspace_id: int | None = None,
        workspace_slug: str | None = None,
    ) -> ResolvedWorkspace:
        """
        Look up the caller's membership by workspace id (preferred) or slug.

        Raises:
            WorkspaceRequiredException: If neither identifier was supplied
            WorkspaceNotFoundException: If the workspace does not exist or the
                user is not a member (same error for both)
        """
        if workspace_id is None and not workspace_slug:
            raise WorkspaceRequiredException("Workspace identifier is required")

        row = self.membership_repo.find_with_workspace(
            user_id,
            workspace_id=workspace_id,
            workspace_slug=workspace_slug if workspace_id is None else None,
        )
        if row is None:
            raise WorkspaceNotFoundException("Workspace not found or access denied")

        membership, workspace = row
        return ResolvedWorkspace(
            id=workspace.id,
            slug=workspace.slug,
            name=workspace.name,
            role=membership.role,
        )

    def resolve_from_input(self, user_id: int, data: Any) -> ResolvedWorkspace:
        """Resolve from the ``workspace_id`` / ``workspace_slug`` of validated input"""
        return self.resolve(
            user_id,
            workspace_id=getattr(data, "workspace_id", None),
            workspace_slug=getattr(data, "workspace_slug", None),
        )
