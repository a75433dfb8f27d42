"""
Authorization engine: a pure allow/deny decision for an action invocation.

Every declared clause must hold (AND semantics). Checks run in a fixed order
and stop at the first failure so the caller gets one precise reason.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from bizdesk.models.action_context import ServerActionContext
from bizdesk.models.permission import Permission, missing_permissions, has_required_role
from bizdesk.models.role import WorkspaceRole

logger = logging.getLogger(__name__)

CustomAuthPredicate = Callable[[ServerActionContext], bool]


@dataclass(frozen=True)
class AuthorizationConfig:
    """
    Declarative requirement attached to an action at registration time.

    Attributes:
        required_permissions: All of these must be granted to the caller's role
        required_role: Minimum role (hierarchy comparison)
        admin_only: Caller must be workspace admin
        custom_auth: Extra predicate over the context
    """

    required_permissions: tuple[Permission, ...] = ()
    required_role: WorkspaceRole | None = None
    admin_only: bool = False
    custom_auth: CustomAuthPredicate | None = None

    @property
    def declares_role_clause(self) -> bool:
        return bool(self.required_permissions) or self.required_role is not None or self.admin_only

    @property
    def is_empty(self) -> bool:
        return not self.declares_role_clause and self.custom_auth is None


@dataclass(frozen=True)
class AuthorizationDenial:
    message: str
    code: str
    field: str = "permissions"


@dataclass(frozen=True)
class AuthorizationResult:
    allowed: bool
    denial: AuthorizationDenial | None = None

    @classmethod
    def allow(cls) -> "AuthorizationResult":
        return cls(allowed=True)

    @classmethod
    def deny(cls, message: str, code: str, field: str = "permissions") -> "AuthorizationResult":
        return cls(allowed=False, denial=AuthorizationDenial(message=message, code=code, field=field))


def check_authorization(
    context: ServerActionContext, config: AuthorizationConfig
) -> AuthorizationResult:
    """
    Decide whether the context satisfies the config.

    Order: workspace present, admin flag, minimum role, permissions, custom
    predicate. No side effects.
    """
    if config.declares_role_clause and context.workspace is None:
        return AuthorizationResult.deny(
            "Workspace context is required for this operation",
            "workspace_required",
            field="workspace",
        )

    role = context.role

    if config.admin_only and role != WorkspaceRole.ADMIN:
        return AuthorizationResult.deny(
            "This operation requires admin privileges", "admin_required"
        )

    if config.required_role is not None and not has_required_role(role, config.required_role):
        return AuthorizationResult.deny(
            f"This operation requires {config.required_role.value} role or higher. "
            f"Current role: {role.value}",
            "insufficient_role",
        )

    if config.required_permissions:
        missing = missing_permissions(role, config.required_permissions)
        if missing:
            return AuthorizationResult.deny(
                "Missing required permissions: " + ", ".join(p.value for p in missing),
                "missing_permissions",
            )

    if config.custom_auth is not None:
        try:
            passed = bool(config.custom_auth(context))
        except Exception:
            logger.exception("Custom authorization predicate raised")
            passed = False
        if not passed:
            return AuthorizationResult.deny(
                "Custom authorization check failed", "custom_auth_failed"
            )

    return AuthorizationResult.allow()
