"""Uniform result contract returned by every action."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


VALIDATION_FAILED = "Validation failed"


class ActionError(BaseModel):
    """Single structured error: callers branch on ``code``, render ``message``."""

    field: str = "general"
    message: str
    code: str


class AuditTrail(BaseModel):
    """Summary of the audit entry written for the invocation"""

    action: str
    resource_type: str
    resource_id: Optional[str] = None
    workspace_id: int
    user_id: int
    timestamp: datetime
    changes: Optional[Any] = None


class ActionResult(BaseModel):
    """
    Result of one action invocation.

    On success ``data`` is authoritative; on failure ``errors`` is, and it
    always holds at least one entry.
    """

    success: bool
    data: Any = None
    message: Optional[str] = None
    errors: list[ActionError] = Field(default_factory=list)
    audit_trail: Optional[AuditTrail] = None

    @model_validator(mode="after")
    def failure_carries_error(self) -> "ActionResult":
        if not self.success and not self.errors:
            raise ValueError("A failed result must carry at least one error")
        return self

    @property
    def error_codes(self) -> list[str]:
        return [error.code for error in self.errors]


def success_result(data: Any = None, message: str | None = None) -> ActionResult:
    return ActionResult(success=True, data=data, message=message)


def error_result(
    message: str,
    errors: list[ActionError | dict] | None = None,
    *,
    code: str = "error",
    field: str = "general",
) -> ActionResult:
    """Failure result; with no explicit errors a single entry is built from message/code/field."""
    if not errors:
        errors = [ActionError(field=field, message=message, code=code)]
    return ActionResult(success=False, message=message, errors=errors)
