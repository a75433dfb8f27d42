"""
Action registry and registration decorators.

Business modules declare actions with ``server_action`` /
``workspace_action`` / ``admin_action``; the HTTP layer looks them up by
name.
"""

from typing import Iterable

from pydantic import BaseModel

from bizdesk.actions.executor import ActionConfig, RateLimitPolicy, ServerAction, Handler
from bizdesk.core.exceptions import NotFoundException
from bizdesk.models.permission import Permission
from bizdesk.models.role import WorkspaceRole
from bizdesk.services.authorization import AuthorizationConfig, CustomAuthPredicate

ACTION_REGISTRY: dict[str, ServerAction] = {}


def register(action: ServerAction) -> ServerAction:
    if action.name in ACTION_REGISTRY:
        raise ValueError(f"Action already registered: {action.name}")
    ACTION_REGISTRY[action.name] = action
    return action


def server_action(
    name: str,
    input_schema: type[BaseModel],
    *,
    require_workspace: bool = False,
    permissions: Iterable[Permission] = (),
    required_role: WorkspaceRole | None = None,
    admin_only: bool = False,
    custom_auth: CustomAuthPredicate | None = None,
    audit: str | None = None,
    resource_type: str | None = None,
    rate_limit: RateLimitPolicy | None = None,
    security_checks: bool = True,
    sanitize: bool = True,
):
    """
    Register the decorated function as a named server action.

    The decorated function is returned as a ``ServerAction``; call it with
    ``(executor, raw_input)``.

    Args:
        audit: Audit verb (CREATE, UPDATE, DELETE or a custom one); unset
            disables audit logging for the action
        resource_type: Resource type recorded on audit rows
    """

    def decorator(handler: Handler) -> ServerAction:
        config = ActionConfig(
            require_workspace=require_workspace,
            authorization=AuthorizationConfig(
                required_permissions=tuple(permissions),
                required_role=required_role,
                admin_only=admin_only,
                custom_auth=custom_auth,
            ),
            rate_limit=rate_limit,
            audit_action=audit,
            audit_resource_type=resource_type,
            security_checks=security_checks,
            sanitize=sanitize,
        )
        return register(ServerAction(name=name, input_schema=input_schema, handler=handler, config=config))

    return decorator


def workspace_action(name: str, input_schema: type[BaseModel], **options):
    """server_action that always resolves a workspace"""
    return server_action(name, input_schema, require_workspace=True, **options)


def admin_action(name: str, input_schema: type[BaseModel], **options):
    """workspace_action restricted to workspace admins"""
    return workspace_action(name, input_schema, admin_only=True, **options)


def get_action(name: str) -> ServerAction:
    """
    Raises:
        NotFoundException: If no action has that name
    """
    action = ACTION_REGISTRY.get(name)
    if action is None:
        raise NotFoundException(f"Unknown action: {name}", code="action_not_found", field="action")
    return action


def list_actions() -> list[str]:
    return sorted(ACTION_REGISTRY)
