"""Workspace and member-management actions."""

import logging
import re

from bizdesk.actions.executor import RateLimitPolicy
from bizdesk.actions.registry import server_action, workspace_action, admin_action
from bizdesk.core.exceptions import (
    NotFoundException,
    SelfModificationException,
    ValidationException,
)
from bizdesk.models.action_context import ServerActionContext
from bizdesk.models.permission import Permission
from bizdesk.models.role import WorkspaceRole
from bizdesk.models.workspace import Workspace
from bizdesk.models.workspace_membership import WorkspaceMembership
from bizdesk.repositories.user_repository import UserRepository
from bizdesk.repositories.workspace_membership_repository import WorkspaceMembershipRepository
from bizdesk.repositories.workspace_repository import WorkspaceRepository
from bizdesk.schemas.action_schemas import success_result
from bizdesk.schemas.workspace_schemas import (
    WorkspaceCreate,
    WorkspaceListRequest,
    WorkspaceUpdate,
    WorkspaceResponse,
    UserWorkspaceResponse,
    MemberInvite,
    MemberRoleUpdate,
    MemberRemove,
    MemberResponse,
    MemberRemoveResponse,
)
from bizdesk.schemas.common_schemas import WorkspaceInput
from bizdesk.services.security_service import SecurityService

logger = logging.getLogger(__name__)

MIN_SLUG_LENGTH = 3
MAX_SLUG_LENGTH = 50


def slugify(name: str) -> str:
    """Lowercase, alphanumerics and single hyphens only"""
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower())
    slug = re.sub(r"[\s-]+", "-", slug).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")


def generate_unique_slug(repo: WorkspaceRepository, name: str) -> str:
    """
    Slug derived from the name, with ``-1``, ``-2``... appended on collision.

    Names too short to give a usable slug get a random ``workspace-`` slug.
    """
    base = slugify(name)
    if len(base) < MIN_SLUG_LENGTH:
        base = f"workspace-{SecurityService.generate_secure_token(8).lower()}"

    candidate = base
    counter = 1
    while repo.slug_exists(candidate):
        suffix = f"-{counter}"
        candidate = f"{base[:MAX_SLUG_LENGTH - len(suffix)].rstrip('-')}{suffix}"
        counter += 1
    return candidate


def _member_response(membership: WorkspaceMembership) -> MemberResponse:
    return MemberResponse(
        id=membership.id,
        user_id=membership.user_id,
        auth_user_id=membership.user.auth_user_id,
        email=membership.user.email,
        role=membership.role,
        created_at=membership.created_at,
    )


def _snapshot(membership: WorkspaceMembership) -> dict:
    return {"user_id": membership.user_id, "role": membership.role.value}


@server_action(
    "workspaces.create",
    WorkspaceCreate,
    rate_limit=RateLimitPolicy(window_minutes=60, max_attempts=10),
)
def create_workspace(data: WorkspaceCreate, context: ServerActionContext):
    """
    Create a workspace with the caller as its admin.

    Workspace and membership are committed together or not at all.
    """
    db = context.db
    workspace_repo = WorkspaceRepository(db)

    if data.slug:
        if workspace_repo.slug_exists(data.slug):
            raise ValidationException(
                "This workspace URL is already taken. Please choose a different one.",
                code="slug_taken",
                field="slug",
            )
        slug = data.slug
    else:
        slug = generate_unique_slug(workspace_repo, data.name)

    workspace = workspace_repo.add_no_commit(
        Workspace(slug=slug, name=data.name, created_by=context.user.id)
    )
    WorkspaceMembershipRepository(db).add_no_commit(
        WorkspaceMembership(
            workspace_id=workspace.id,
            user_id=context.user.id,
            role=WorkspaceRole.ADMIN,
        )
    )
    db.commit()
    db.refresh(workspace)
    logger.info("Workspace %s created by user %s", workspace.slug, context.user.id)

    # Created before any workspace context existed, so the executor cannot audit it
    context.audit_logger.log_create(
        workspace.id,
        context.user.id,
        "workspace",
        workspace.id,
        {"name": workspace.name, "slug": workspace.slug},
        metadata=context.request,
    )
    return success_result(WorkspaceResponse.model_validate(workspace), "Workspace created")


@server_action("workspaces.list", WorkspaceListRequest)
def list_workspaces(data: WorkspaceListRequest, context: ServerActionContext):
    """Every workspace the caller belongs to, with their role in each"""
    rows = WorkspaceMembershipRepository(context.db).get_user_workspaces(context.user.id)
    return success_result(
        [
            UserWorkspaceResponse(
                id=workspace.id,
                slug=workspace.slug,
                name=workspace.name,
                role=membership.role,
                created_at=workspace.created_at,
            )
            for membership, workspace in rows
        ]
    )


@workspace_action("workspaces.get", WorkspaceInput, permissions=[Permission.WORKSPACE_READ])
def get_workspace(data: WorkspaceInput, context: ServerActionContext):
    workspace = WorkspaceRepository(context.db).get_by_id(context.workspace.id)
    return success_result(
        UserWorkspaceResponse(
            id=workspace.id,
            slug=workspace.slug,
            name=workspace.name,
            role=context.workspace.role,
            created_at=workspace.created_at,
        )
    )


@admin_action(
    "workspaces.update",
    WorkspaceUpdate,
    permissions=[Permission.WORKSPACE_UPDATE],
    audit="UPDATE",
    resource_type="workspace",
)
def update_workspace(data: WorkspaceUpdate, context: ServerActionContext):
    """Rename the workspace (slug is immutable)"""
    repo = WorkspaceRepository(context.db)
    workspace = repo.get_by_id(context.workspace.id)
    old_values = {"name": workspace.name}
    workspace.name = data.name
    workspace = repo.update(workspace)
    context.record_change(old_values, {"name": workspace.name})
    return success_result(WorkspaceResponse.model_validate(workspace), "Workspace updated")


@workspace_action("members.list", WorkspaceInput, permissions=[Permission.WORKSPACE_READ])
def list_members(data: WorkspaceInput, context: ServerActionContext):
    memberships = WorkspaceMembershipRepository(context.db).get_workspace_members(
        context.workspace.id
    )
    return success_result([_member_response(m) for m in memberships])


@workspace_action(
    "members.invite",
    MemberInvite,
    permissions=[Permission.WORKSPACE_INVITE_MEMBERS],
    audit="CREATE",
    resource_type="workspace_member",
    rate_limit=RateLimitPolicy(),
)
def invite_member(data: MemberInvite, context: ServerActionContext):
    """
    Add a user to the workspace by identity-provider id.

    The local user row is created if they have never signed in.
    """
    membership_repo = WorkspaceMembershipRepository(context.db)
    user = UserRepository(context.db).get_or_create_by_auth_id(data.auth_user_id, data.email)

    if membership_repo.is_member(user.id, context.workspace.id):
        raise ValidationException(
            f"User {data.auth_user_id} is already a member",
            code="already_member",
            field="auth_user_id",
        )

    membership = membership_repo.create(
        WorkspaceMembership(
            workspace_id=context.workspace.id,
            user_id=user.id,
            role=data.role,
        )
    )
    context.record_change(new_values=_snapshot(membership))
    return success_result(_member_response(membership), "Member invited")


@workspace_action(
    "members.change_role",
    MemberRoleUpdate,
    permissions=[Permission.WORKSPACE_CHANGE_MEMBER_ROLES],
    audit="UPDATE",
    resource_type="workspace_member",
)
def change_member_role(data: MemberRoleUpdate, context: ServerActionContext):
    """Change another member's role; changing your own is always refused"""
    if data.user_id == context.user.id:
        raise SelfModificationException("Cannot change your own role")

    membership_repo = WorkspaceMembershipRepository(context.db)
    membership = membership_repo.get_membership(data.user_id, context.workspace.id)
    if not membership:
        raise NotFoundException("Member not found in this workspace", field="user_id")

    old_values = _snapshot(membership)
    membership.role = data.role
    membership = membership_repo.update(membership)
    context.record_change(old_values, _snapshot(membership))
    return success_result(_member_response(membership), "Member role updated")


@workspace_action(
    "members.remove",
    MemberRemove,
    permissions=[Permission.WORKSPACE_REMOVE_MEMBERS],
    audit="DELETE",
    resource_type="workspace_member",
)
def remove_member(data: MemberRemove, context: ServerActionContext):
    """Remove another member; removing yourself is always refused"""
    if data.user_id == context.user.id:
        raise SelfModificationException("Cannot remove yourself from the workspace")

    membership_repo = WorkspaceMembershipRepository(context.db)
    membership = membership_repo.get_membership(data.user_id, context.workspace.id)
    if not membership:
        raise NotFoundException("Member not found in this workspace", field="user_id")

    context.record_change(old_values=_snapshot(membership))
    membership_repo.delete(membership)
    return success_result(
        MemberRemoveResponse(message="Member removed successfully", removed_user_id=data.user_id),
        "Member removed",
    )
