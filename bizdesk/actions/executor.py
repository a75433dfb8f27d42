"""
Action executor: the ordered pipeline every business action runs through.

    validate -> screen -> authenticate -> rate limit -> resolve workspace
    -> authorize -> suspicious-activity check -> execute -> audit

A failing stage returns immediately with a structured error; later stages
and the handler never run. Nothing escapes ``execute`` as an exception.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from bizdesk.config import settings
from bizdesk.core.exceptions import BizDeskException, ConflictException, UnauthorizedException
from bizdesk.core.validation import validate_input
from bizdesk.models.action_context import (
    AuthenticatedUser,
    RequestMetadata,
    ServerActionContext,
)
from bizdesk.schemas.action_schemas import (
    ActionResult,
    AuditTrail,
    VALIDATION_FAILED,
    error_result,
    success_result,
)
from bizdesk.services.audit_logger import AuditLogger
from bizdesk.services.authorization import AuthorizationConfig, check_authorization
from bizdesk.services.identity import IdentityProvider
from bizdesk.services.security_service import SecurityService
from bizdesk.services.workspace_resolver import WorkspaceResolver

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = ("password", "token", "secret", "api_key", "private_key")
REDACTED = "[REDACTED]"

Handler = Callable[[Any, ServerActionContext], Any]


@dataclass(frozen=True)
class RateLimitPolicy:
    """
    Rolling-window limit for one action.

    ``degrade_open`` allows requests when the attempt store itself fails,
    trading strictness for availability.
    """

    window_minutes: int = settings.RATE_LIMIT_WINDOW_MINUTES
    max_attempts: int = settings.RATE_LIMIT_MAX_ATTEMPTS
    degrade_open: bool = settings.RATE_LIMIT_DEGRADE_OPEN


@dataclass(frozen=True)
class ActionConfig:
    """Per-action pipeline switches; optional stages are skipped when unset"""

    require_workspace: bool = False
    authorization: AuthorizationConfig = field(default_factory=AuthorizationConfig)
    rate_limit: RateLimitPolicy | None = None
    audit_action: str | None = None
    audit_resource_type: str | None = None
    security_checks: bool = True
    sanitize: bool = True


@dataclass(frozen=True)
class ServerAction:
    """A named handler plus its input schema and pipeline configuration"""

    name: str
    input_schema: type[BaseModel]
    handler: Handler
    config: ActionConfig = field(default_factory=ActionConfig)

    def __call__(self, executor: "ActionExecutor", raw: Any) -> ActionResult:
        return executor.execute(self, raw)


def sanitize_for_audit(data: Any) -> Any:
    """Redact values whose key contains a sensitive name (recursive); unset values stay None"""
    if isinstance(data, dict):
        return {
            key: REDACTED
            if value is not None and any(name in str(key).lower() for name in SENSITIVE_FIELDS)
            else sanitize_for_audit(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [sanitize_for_audit(item) for item in data]
    return data


def extract_resource_id(data: Any) -> str | None:
    if data is None:
        return None
    if isinstance(data, dict):
        value = data.get("id")
    elif isinstance(data, (str, int)) and not isinstance(data, bool):
        value = data
    else:
        value = getattr(data, "id", None)
    return str(value) if value is not None else None


def result_from_exception(exc: BizDeskException) -> ActionResult:
    return error_result(exc.message, code=exc.code, field=exc.field)


def server_error_result() -> ActionResult:
    """Generic failure for unexpected errors; details stay in the server log"""
    return error_result(
        "An unexpected error occurred",
        [
            {
                "field": "server",
                "message": "Server error occurred while processing your request",
                "code": "server_error",
            }
        ],
    )


class ActionExecutor:
    """
    Runs server actions for one request.

    The session, identity provider and request metadata belong to a single
    request; the security service and audit logger are injected (or built on
    the same session) so tests can replace them.
    """

    def __init__(
        self,
        db: Session,
        identity_provider: IdentityProvider,
        security_service: SecurityService | None = None,
        audit_logger: AuditLogger | None = None,
        request: RequestMetadata | None = None,
    ):
        self.db = db
        self.identity_provider = identity_provider
        self.audit_logger = audit_logger or AuditLogger(db)
        self.security = security_service or SecurityService(db, self.audit_logger)
        self.request = request or RequestMetadata()
        self.resolver = WorkspaceResolver(db)

    def execute(self, action: ServerAction, raw: Any) -> ActionResult:
        try:
            return self._run(action, raw)
        except BizDeskException as exc:
            self.db.rollback()
            return result_from_exception(exc)
        except Exception:
            logger.exception("Server action %s failed", action.name)
            self.db.rollback()
            return server_error_result()

    def _run(self, action: ServerAction, raw: Any) -> ActionResult:
        config = action.config

        # 1. Validate
        data, errors = validate_input(action.input_schema, raw)
        if errors:
            return error_result(VALIDATION_FAILED, errors)

        # 2. Security screen
        if config.security_checks:
            payload = data.model_dump()
            if config.sanitize:
                payload = self.security.sanitize_input(payload)
            if not self.security.validate_sql_params(payload):
                self.security.log_security_event(
                    "SQL_INJECTION_ATTEMPT",
                    None,
                    {"action": action.name, "input": sanitize_for_audit(payload)},
                    metadata=self.request,
                )
                return error_result(
                    "Invalid input parameters",
                    code="security_violation",
                    field="security",
                )
            data, errors = validate_input(action.input_schema, payload)
            if errors:
                return error_result(VALIDATION_FAILED, errors)

        # 3. Authenticate
        try:
            user = self.identity_provider.require_auth()
        except UnauthorizedException as exc:
            logger.info("Rejected unauthenticated call to %s: %s", action.name, exc.message)
            return error_result(
                "Authentication required",
                [
                    {
                        "field": "auth",
                        "message": "You must be logged in to perform this action",
                        "code": "auth_required",
                    }
                ],
            )

        # 4. Rate limit
        if config.rate_limit is not None:
            policy = config.rate_limit
            status = self.security.check_rate_limit(
                user.id,
                action.name,
                window_minutes=policy.window_minutes,
                max_attempts=policy.max_attempts,
                degrade_open=policy.degrade_open,
            )
            if not status.allowed:
                return error_result(
                    "Rate limit exceeded. Please try again later.",
                    [
                        {
                            "field": "rate_limit",
                            "message": "Too many attempts. Try again after "
                            f"{status.reset_time.strftime('%H:%M:%S')} UTC",
                            "code": "rate_limit_exceeded",
                        }
                    ],
                )

        context = ServerActionContext(
            user=user,
            db=self.db,
            request=self.request,
            audit_logger=self.audit_logger,
            security=self.security,
        )

        # 5. Resolve workspace
        if config.require_workspace:
            context.workspace = self.resolver.resolve_from_input(user.id, data)

        # 6. Authorize
        if not config.authorization.is_empty:
            decision = check_authorization(context, config.authorization)
            if not decision.allowed:
                denial = decision.denial
                logger.info(
                    "Denied %s for user %s: %s", action.name, user.id, denial.code
                )
                return error_result(denial.message, code=denial.code, field=denial.field)

        # 7. Suspicious activity (reports only)
        if config.security_checks and context.workspace is not None:
            self.security.detect_suspicious_activity(
                user.id,
                context.workspace.id,
                config.audit_action or "ACTION",
                metadata=self.request,
                resource_type=config.audit_resource_type,
            )

        # 8. Execute
        result = self._invoke(action, data, context)

        # 9. Audit
        if config.audit_action and context.workspace is not None:
            result.audit_trail = self._audit(action, data, context, user, result)

        return result

    def _invoke(self, action: ServerAction, data: BaseModel, context: ServerActionContext) -> ActionResult:
        """Run the handler; every failure becomes an ordinary result so the audit stage still runs"""
        try:
            outcome = action.handler(data, context)
        except BizDeskException as exc:
            self.db.rollback()
            return result_from_exception(exc)
        except StaleDataError:
            self.db.rollback()
            logger.warning("Concurrent modification during %s", action.name)
            return result_from_exception(
                ConflictException("The record was changed by another request. Reload and try again.")
            )
        except IntegrityError:
            self.db.rollback()
            logger.warning("Integrity error during %s", action.name, exc_info=True)
            return result_from_exception(
                ConflictException("A record with this information already exists", code="duplicate_record")
            )
        except Exception:
            logger.exception("Server action %s failed", action.name)
            self.db.rollback()
            return server_error_result()
        if isinstance(outcome, ActionResult):
            return outcome
        return success_result(outcome)

    def _audit(
        self,
        action: ServerAction,
        data: BaseModel,
        context: ServerActionContext,
        user: AuthenticatedUser,
        result: ActionResult,
    ) -> AuditTrail | None:
        """Write the audit row for the invocation; failures never reach the caller"""
        config = action.config
        verb = config.audit_action.upper()
        resource_type = config.audit_resource_type or "unknown"
        workspace_id = context.workspace.id
        resource_id = extract_resource_id(result.data)
        audit_input = sanitize_for_audit(data.model_dump(exclude={"workspace_id", "workspace_slug"}))
        old_values = sanitize_for_audit(context.old_values)
        new_values = sanitize_for_audit(context.new_values)

        if result.success and verb == "CREATE":
            row = self.audit_logger.log_create(
                workspace_id, user.id, resource_type, resource_id,
                new_values if new_values is not None else audit_input,
                metadata=self.request,
            )
        elif result.success and verb == "UPDATE" and old_values is not None:
            row = self.audit_logger.log_update(
                workspace_id, user.id, resource_type, resource_id,
                old_values, new_values if new_values is not None else audit_input,
                metadata=self.request,
            )
        elif result.success and verb == "DELETE":
            row = self.audit_logger.log_delete(
                workspace_id, user.id, resource_type, resource_id,
                old_values if old_values is not None else audit_input,
                metadata=self.request,
            )
        else:
            row = self.audit_logger.log_action(
                workspace_id, user.id, verb, resource_type, resource_id,
                details={
                    "input": audit_input,
                    "result": "SUCCESS" if result.success else "FAILURE",
                    "message": result.message,
                },
                metadata=self.request,
            )

        if row is None:
            return None
        return AuditTrail(
            action=row.action,
            resource_type=row.resource_type,
            resource_id=row.resource_id,
            workspace_id=workspace_id,
            user_id=user.id,
            timestamp=row.created_at,
            changes=row.changes,
        )
