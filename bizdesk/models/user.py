from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import TYPE_CHECKING
from bizdesk.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from bizdesk.models.workspace_membership import WorkspaceMembership


class User(Base, TimestampMixin):
    """
    Tracks users from the identity provider.

    Only stores the 'sub' claim (and email when the token carries one), no
    credentials. Auto-created on first request with a valid JWT.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    auth_user_id: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Relationships
    memberships: Mapped[list["WorkspaceMembership"]] = relationship(
        "WorkspaceMembership",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, auth_user_id='{self.auth_user_id}')>"
