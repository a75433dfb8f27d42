"""Workspace membership model linking users to workspaces with roles."""

from sqlalchemy import Integer, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import TYPE_CHECKING

from bizdesk.models.base import Base, TimestampMixin
from bizdesk.models.role import WorkspaceRole

if TYPE_CHECKING:
    from bizdesk.models.user import User
    from bizdesk.models.workspace import Workspace


class WorkspaceMembership(Base, TimestampMixin):
    """
    Join table linking users to workspaces with roles.

    Constraints:
    - Unique(workspace_id, user_id) - one membership per user per workspace
    - Role changes are made by an admin of the workspace, never by the
      member on their own row (enforced at application layer)
    """

    __tablename__ = "workspace_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    workspace_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[WorkspaceRole] = mapped_column(
        Enum(WorkspaceRole, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=WorkspaceRole.MEMBER,
    )

    # Relationships
    workspace: Mapped["Workspace"] = relationship("Workspace", back_populates="memberships")
    user: Mapped["User"] = relationship("User", back_populates="memberships")

    # Constraints
    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_workspace_user"),
    )

    def __repr__(self) -> str:
        return f"<WorkspaceMembership(workspace_id={self.workspace_id}, user_id={self.user_id}, role={self.role.value})>"
