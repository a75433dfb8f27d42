"""Workspace model for multi-tenant isolation."""

from sqlalchemy import String, Integer, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import TYPE_CHECKING

from bizdesk.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from bizdesk.models.workspace_membership import WorkspaceMembership


class Workspace(Base, TimestampMixin):
    """
    Multi-tenant isolation boundary.

    Every customer, invoice, expense, task, payment and audit row carries a
    workspace_id and every query filters on it. Users reach workspace data
    only through a membership with a role (admin, member, viewer).

    The slug is the caller-facing identifier (globally unique, immutable);
    the integer id is the internal foreign-key value.
    """

    __tablename__ = "workspaces"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    memberships: Mapped[list["WorkspaceMembership"]] = relationship(
        "WorkspaceMembership",
        back_populates="workspace",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Workspace(id={self.id}, slug='{self.slug}')>"
