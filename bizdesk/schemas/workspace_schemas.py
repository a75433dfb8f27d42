from datetime import datetime
from pydantic import BaseModel, Field

from bizdesk.models.role import WorkspaceRole
from bizdesk.schemas.common_schemas import WorkspaceInput

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class WorkspaceCreate(BaseModel):
    """Create a workspace; the caller becomes its admin"""

    name: str = Field(..., min_length=1, max_length=255)
    slug: str | None = Field(
        None,
        min_length=3,
        max_length=50,
        pattern=SLUG_PATTERN,
        description="Generated from the name when omitted",
    )


class WorkspaceListRequest(BaseModel):
    """List the caller's workspaces (no workspace selector)"""


class WorkspaceUpdate(WorkspaceInput):
    """Rename a workspace (ADMIN only); the slug is immutable"""

    name: str = Field(..., min_length=1, max_length=255)


class WorkspaceResponse(BaseModel):
    """Workspace details response"""

    id: int
    slug: str
    name: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserWorkspaceResponse(BaseModel):
    """Workspace with the caller's role in it"""

    id: int
    slug: str
    name: str
    role: WorkspaceRole
    created_at: datetime


class MemberResponse(BaseModel):
    """Workspace member details with user info"""

    id: int
    user_id: int
    auth_user_id: str
    email: str | None
    role: WorkspaceRole
    created_at: datetime


class MemberInvite(WorkspaceInput):
    """Invite a user (by identity-provider id) into the workspace"""

    auth_user_id: str = Field(..., min_length=1, max_length=255)
    email: str | None = Field(None, max_length=255)
    role: WorkspaceRole = Field(
        default=WorkspaceRole.MEMBER, description="Role to assign (default: MEMBER)"
    )


class MemberRoleUpdate(WorkspaceInput):
    """Change another member's role"""

    user_id: int = Field(..., gt=0)
    role: WorkspaceRole


class MemberRemove(WorkspaceInput):
    """Remove another member from the workspace"""

    user_id: int = Field(..., gt=0)


class MemberRemoveResponse(BaseModel):
    """Response after removing member"""

    message: str
    removed_user_id: int
