"""Repository for WorkspaceMembership model operations."""

from sqlalchemy.orm import Session
from bizdesk.models.workspace import Workspace
from bizdesk.models.workspace_membership import WorkspaceMembership


class WorkspaceMembershipRepository:
    """Repository for WorkspaceMembership model operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_membership(self, user_id: int, workspace_id: int) -> WorkspaceMembership | None:
        """
        Get membership for a specific user in a specific workspace.

        Args:
            user_id: User ID
            workspace_id: Workspace ID

        Returns:
            WorkspaceMembership object or None if not found
        """
        return (
            self.db.query(WorkspaceMembership)
            .filter(
                WorkspaceMembership.user_id == user_id,
                WorkspaceMembership.workspace_id == workspace_id,
            )
            .first()
        )

    def find_with_workspace(
        self,
        user_id: int,
        workspace_id: int | None = None,
        workspace_slug: str | None = None,
    ) -> tuple[WorkspaceMembership, Workspace] | None:
        """
        Membership joined to its workspace, filtered by user and ONE identifier.

        The id is used when given, otherwise the slug. Returns None when the
        workspace does not exist or the user is not a member; the two cases
        are not distinguished.
        """
        query = (
            self.db.query(WorkspaceMembership, Workspace)
            .join(Workspace, WorkspaceMembership.workspace_id == Workspace.id)
            .filter(WorkspaceMembership.user_id == user_id)
        )
        if workspace_id is not None:
            query = query.filter(Workspace.id == workspace_id)
        elif workspace_slug is not None:
            query = query.filter(Workspace.slug == workspace_slug)
        else:
            return None

        row = query.first()
        if row is None:
            return None
        return row[0], row[1]

    def get_workspace_members(self, workspace_id: int) -> list[WorkspaceMembership]:
        """All memberships of a workspace, oldest first"""
        return (
            self.db.query(WorkspaceMembership)
            .filter(WorkspaceMembership.workspace_id == workspace_id)
            .order_by(WorkspaceMembership.created_at, WorkspaceMembership.id)
            .all()
        )

    def get_user_workspaces(self, user_id: int) -> list[tuple[WorkspaceMembership, Workspace]]:
        """Every workspace the user belongs to, with the membership row"""
        rows = (
            self.db.query(WorkspaceMembership, Workspace)
            .join(Workspace, WorkspaceMembership.workspace_id == Workspace.id)
            .filter(WorkspaceMembership.user_id == user_id)
            .order_by(Workspace.name)
            .all()
        )
        return [(membership, workspace) for membership, workspace in rows]

    def is_member(self, user_id: int, workspace_id: int) -> bool:
        return self.get_membership(user_id, workspace_id) is not None

    def create(self, membership: WorkspaceMembership) -> WorkspaceMembership:
        """
        Create a new workspace membership.

        Raises:
            IntegrityError: If (workspace_id, user_id) already exists
        """
        self.db.add(membership)
        self.db.commit()
        self.db.refresh(membership)
        return membership

    def add_no_commit(self, membership: WorkspaceMembership) -> WorkspaceMembership:
        """Stage a membership without committing (for atomic ops)"""
        self.db.add(membership)
        self.db.flush()
        return membership

    def update(self, membership: WorkspaceMembership) -> WorkspaceMembership:
        self.db.commit()
        self.db.refresh(membership)
        return membership

    def delete(self, membership: WorkspaceMembership) -> None:
        """Remove a user from a workspace"""
        self.db.delete(membership)
        self.db.commit()
