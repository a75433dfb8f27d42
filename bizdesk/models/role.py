"""Workspace role enum for role-based access control."""

from enum import Enum as PyEnum


class WorkspaceRole(str, PyEnum):
    """
    Workspace membership roles with hierarchical permissions.

    Role Hierarchy (highest to lowest):
    1. ADMIN - Full control: member management, destructive deletes, audit access
    2. MEMBER - Create/edit business data, cannot delete or manage users
    3. VIEWER - Read-only access to all business data
    """

    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

    @property
    def rank(self) -> int:
        return ROLE_HIERARCHY[self]


ROLE_HIERARCHY: dict[WorkspaceRole, int] = {
    WorkspaceRole.VIEWER: 1,
    WorkspaceRole.MEMBER: 2,
    WorkspaceRole.ADMIN: 3,
}
