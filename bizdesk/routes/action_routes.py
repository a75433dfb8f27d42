"""
HTTP surface for server actions.

Every action is reachable at ``POST /api/actions/{name}`` with its input as
the JSON body. The body of the response is always the serialized
``ActionResult``; the status code is derived from the first error code.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse

# Importing the modules registers their actions
from bizdesk.actions import (  # noqa: F401
    audit_actions,
    customer_actions,
    dashboard_actions,
    expense_actions,
    file_actions,
    invoice_actions,
    payment_actions,
    task_actions,
    workspace_actions,
)
from bizdesk.actions.executor import ActionExecutor
from bizdesk.actions.registry import get_action, list_actions
from bizdesk.core.validation import is_validation_failure
from bizdesk.dependencies import get_action_executor
from bizdesk.schemas.action_schemas import ActionResult

router = APIRouter()

FORBIDDEN_CODES = {
    "workspace_required",
    "admin_required",
    "insufficient_role",
    "missing_permissions",
    "custom_auth_failed",
    "resource_access_denied",
    "self_modification_forbidden",
}

CONFLICT_CODES = {
    "concurrent_modification",
    "slug_taken",
    "already_member",
}


def status_for_result(result: ActionResult) -> int:
    if result.success:
        return status.HTTP_200_OK

    if is_validation_failure(result.errors):
        return status.HTTP_422_UNPROCESSABLE_ENTITY

    code = result.errors[0].code
    if code == "auth_required":
        return status.HTTP_401_UNAUTHORIZED
    if code in FORBIDDEN_CODES:
        return status.HTTP_403_FORBIDDEN
    if code.endswith("_not_found"):
        return status.HTTP_404_NOT_FOUND
    if code in CONFLICT_CODES or code.startswith("duplicate_"):
        return status.HTTP_409_CONFLICT
    if code == "rate_limit_exceeded":
        return status.HTTP_429_TOO_MANY_REQUESTS
    if code == "server_error":
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_400_BAD_REQUEST


@router.get("")
async def get_actions():
    """Names of all registered actions"""
    return {"actions": list_actions()}


@router.post("/{action_name}", response_model=ActionResult)
def run_action(
    action_name: str,
    payload: dict[str, Any] | None = Body(default=None),
    executor: ActionExecutor = Depends(get_action_executor),
):
    """Run one action through the executor pipeline"""
    action = get_action(action_name)
    result = action(executor, payload or {})
    return JSONResponse(
        status_code=status_for_result(result),
        content=result.model_dump(mode="json"),
    )
