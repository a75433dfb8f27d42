"""Repository for Workspace model operations."""

from sqlalchemy.orm import Session
from bizdesk.models.workspace import Workspace


class WorkspaceRepository:
    """Repository for Workspace model operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, workspace_id: int) -> Workspace | None:
        return self.db.query(Workspace).filter(Workspace.id == workspace_id).first()

    def get_by_slug(self, slug: str) -> Workspace | None:
        return self.db.query(Workspace).filter(Workspace.slug == slug).first()

    def slug_exists(self, slug: str) -> bool:
        return self.db.query(Workspace.id).filter(Workspace.slug == slug).first() is not None

    def add_no_commit(self, workspace: Workspace) -> Workspace:
        """
        Stage a new workspace and assign its ID without committing.

        Caller is responsible for commit (workspace + admin membership are
        written in one transaction).
        """
        self.db.add(workspace)
        self.db.flush()
        return workspace

    def update(self, workspace: Workspace) -> Workspace:
        """Commit pending changes on a workspace"""
        self.db.commit()
        self.db.refresh(workspace)
        return workspace
