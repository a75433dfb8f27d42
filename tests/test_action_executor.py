import re
import pytest
from typing import Optional
from pydantic import Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from bizdesk.actions.executor import (
    ActionConfig,
    ActionExecutor,
    RateLimitPolicy,
    ServerAction,
    sanitize_for_audit,
    extract_resource_id,
)
from bizdesk.actions.registry import get_action, register, list_actions
from bizdesk.core.exceptions import NotFoundException, ValidationException
from bizdesk.models.action_context import RequestMetadata
from bizdesk.models.audit_log import AuditLog
from bizdesk.models.permission import Permission
from bizdesk.models.role import WorkspaceRole
from bizdesk.schemas.action_schemas import ActionResult, success_result
from bizdesk.schemas.common_schemas import WorkspaceInput
from bizdesk.services.audit_logger import AuditLogger
from bizdesk.services.authorization import AuthorizationConfig
from bizdesk.services.identity import StaticIdentityProvider
from bizdesk.services.security_service import SecurityService, SuspiciousActivityThresholds
from tests.conftest import identity


class WidgetInput(WorkspaceInput):
    name: str = Field(..., min_length=1, max_length=50)
    api_token: Optional[str] = None


class CountingProvider:
    """Identity provider that records whether authentication ran"""

    def __init__(self, user=None):
        self.calls = 0
        self.inner = StaticIdentityProvider(user)

    def require_auth(self):
        self.calls += 1
        return self.inner.require_auth()


class Recorder:
    def __init__(self, outcome=None, error: Exception | None = None):
        self.calls = []
        self.outcome = outcome
        self.error = error

    def __call__(self, data, context):
        self.calls.append((data, context))
        if self.error is not None:
            raise self.error
        if self.outcome is not None:
            return self.outcome
        return {"id": 42, "name": data.name}


def widget_action(handler, **config) -> ServerAction:
    return ServerAction(
        name="widgets.create",
        input_schema=WidgetInput,
        handler=handler,
        config=ActionConfig(**config),
    )


def audit_rows(db_session, action=None):
    query = db_session.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    return query.order_by(AuditLog.id).all()


class TestPipelineOrder:
    """Stages run in order and stop at the first failure"""

    def test_validation_runs_before_authentication(self, db_session):
        provider = CountingProvider()
        handler = Recorder()

        result = widget_action(handler)(ActionExecutor(db_session, provider), {"name": ""})

        assert not result.success
        assert result.message == "Validation failed"
        assert result.errors[0].field == "name"
        assert provider.calls == 0
        assert handler.calls == []

    def test_injection_rejected_before_authentication(self, db_session):
        provider = CountingProvider()
        handler = Recorder()

        result = widget_action(handler)(
            ActionExecutor(db_session, provider),
            {"name": "'; DROP TABLE customers; --"},
        )

        assert result.error_codes == ["security_violation"]
        assert result.errors[0].field == "security"
        assert provider.calls == 0
        assert handler.calls == []

        [event] = audit_rows(db_session, "SECURITY_SQL_INJECTION_ATTEMPT")
        assert event.user_id is None
        assert event.workspace_id is None
        assert event.changes["action"] == "widgets.create"

    def test_markup_is_stripped_before_handler(self, db_session, admin_user):
        handler = Recorder()

        result = widget_action(handler)(
            ActionExecutor(db_session, StaticIdentityProvider(identity(admin_user))),
            {"name": "<script>alert(1)</script>Acme"},
        )

        assert result.success
        assert handler.calls[0][0].name == "Acme"

    def test_unsanitized_when_disabled(self, db_session, admin_user):
        handler = Recorder()

        widget_action(handler, sanitize=False)(
            ActionExecutor(db_session, StaticIdentityProvider(identity(admin_user))),
            {"name": "<b>Acme</b>"},
        )

        assert handler.calls[0][0].name == "<b>Acme</b>"

    def test_unauthenticated(self, db_session):
        result = widget_action(Recorder())(
            ActionExecutor(db_session, StaticIdentityProvider(None)), {"name": "Acme"}
        )

        assert result.message == "Authentication required"
        assert result.errors[0].code == "auth_required"
        assert result.errors[0].field == "auth"

    def test_missing_workspace(self, db_session, admin_user):
        handler = Recorder()

        result = widget_action(handler, require_workspace=True)(
            ActionExecutor(db_session, StaticIdentityProvider(identity(admin_user))),
            {"name": "Acme"},
        )

        assert result.error_codes == ["workspace_required"]
        assert handler.calls == []

    def test_non_member(self, db_session, workspace, outsider_user):
        result = widget_action(Recorder(), require_workspace=True)(
            ActionExecutor(db_session, StaticIdentityProvider(identity(outsider_user))),
            {"workspace_id": workspace.id, "name": "Acme"},
        )

        assert result.error_codes == ["workspace_not_found"]
        assert result.message == "Workspace not found or access denied"

    def test_authorization_denied_skips_handler(self, db_session, workspace, viewer_user):
        handler = Recorder()
        action = widget_action(
            handler,
            require_workspace=True,
            authorization=AuthorizationConfig(required_role=WorkspaceRole.MEMBER),
        )

        result = action(
            ActionExecutor(db_session, StaticIdentityProvider(identity(viewer_user))),
            {"workspace_id": workspace.id, "name": "Acme"},
        )

        assert result.error_codes == ["insufficient_role"]
        assert result.message == "This operation requires member role or higher. Current role: viewer"
        assert handler.calls == []

    def test_handler_sees_resolved_context(self, db_session, workspace, member_user):
        handler = Recorder()

        widget_action(handler, require_workspace=True)(
            ActionExecutor(db_session, StaticIdentityProvider(identity(member_user))),
            {"workspace_slug": "acme", "name": "Acme"},
        )

        context = handler.calls[0][1]
        assert context.workspace.id == workspace.id
        assert context.role == WorkspaceRole.MEMBER
        assert context.user.id == member_user.id


class TestHandlerOutcomes:
    def _run(self, db_session, user, handler, **config):
        executor = ActionExecutor(db_session, StaticIdentityProvider(identity(user)))
        return widget_action(handler, **config)(executor, {"name": "Acme"})

    def test_plain_return_value_is_wrapped(self, db_session, admin_user):
        result = self._run(db_session, admin_user, Recorder(outcome=[1, 2]))

        assert result.success
        assert result.data == [1, 2]

    def test_action_result_passes_through(self, db_session, admin_user):
        result = self._run(db_session, admin_user, Recorder(outcome=success_result("x", "done")))

        assert result.data == "x"
        assert result.message == "done"

    def test_domain_error(self, db_session, admin_user):
        error = ValidationException("Nope", code="invalid_state", field="status")

        result = self._run(db_session, admin_user, Recorder(error=error))

        assert not result.success
        assert result.errors[0].model_dump() == {
            "field": "status",
            "message": "Nope",
            "code": "invalid_state",
        }

    def test_unexpected_error_is_generic(self, db_session, admin_user, caplog):
        result = self._run(db_session, admin_user, Recorder(error=RuntimeError("secret detail")))

        assert result.message == "An unexpected error occurred"
        assert result.errors[0].code == "server_error"
        assert result.errors[0].field == "server"
        assert "secret detail" not in result.model_dump_json()
        assert "Server action widgets.create failed" in caplog.text

    def test_integrity_error(self, db_session, admin_user):
        error = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

        result = self._run(db_session, admin_user, Recorder(error=error))

        assert result.error_codes == ["duplicate_record"]

    def test_stale_data(self, db_session, admin_user):
        result = self._run(db_session, admin_user, Recorder(error=StaleDataError("stale")))

        assert result.error_codes == ["concurrent_modification"]


class TestRateLimitStage:
    def test_second_call_limited(self, db_session, admin_user):
        action = widget_action(
            Recorder(), rate_limit=RateLimitPolicy(window_minutes=5, max_attempts=1)
        )
        executor = ActionExecutor(db_session, StaticIdentityProvider(identity(admin_user)))

        first = action(executor, {"name": "Acme"})
        second = action(executor, {"name": "Acme"})

        assert first.success
        assert second.message == "Rate limit exceeded. Please try again later."
        assert second.errors[0].code == "rate_limit_exceeded"
        assert second.errors[0].field == "rate_limit"
        assert re.fullmatch(
            r"Too many attempts\. Try again after \d{2}:\d{2}:\d{2} UTC", second.errors[0].message
        )

    def test_no_policy_means_no_limit(self, db_session, admin_user):
        action = widget_action(Recorder())
        executor = ActionExecutor(db_session, StaticIdentityProvider(identity(admin_user)))

        assert all(action(executor, {"name": "Acme"}).success for _ in range(15))


class TestAuditStage:
    """Audit entries written after the handler"""

    def _executor(self, db_session, user, **kwargs):
        return ActionExecutor(db_session, StaticIdentityProvider(identity(user)), **kwargs)

    def test_success_create_is_audited_with_redaction(self, db_session, workspace, admin_user):
        action = widget_action(
            Recorder(), require_workspace=True, audit_action="CREATE", audit_resource_type="widget"
        )
        metadata = RequestMetadata(ip_address="198.51.100.7", user_agent="pytest")

        result = action(
            self._executor(db_session, admin_user, request=metadata),
            {"workspace_id": workspace.id, "name": "Acme", "api_token": "abc123"},
        )

        assert result.success
        assert result.audit_trail.action == "CREATE"
        assert result.audit_trail.resource_type == "widget"
        assert result.audit_trail.resource_id == "42"
        assert result.audit_trail.workspace_id == workspace.id

        [row] = audit_rows(db_session, "CREATE")
        assert row.new_values == {"name": "Acme", "api_token": "[REDACTED]"}
        assert row.ip_address == "198.51.100.7"
        assert row.user_agent == "pytest"

    def test_failed_handler_is_audited_as_failure(self, db_session, workspace, admin_user):
        action = widget_action(
            Recorder(error=ValidationException("Nope")),
            require_workspace=True,
            audit_action="CREATE",
            audit_resource_type="widget",
        )

        result = action(
            self._executor(db_session, admin_user), {"workspace_id": workspace.id, "name": "Acme"}
        )

        assert not result.success
        [row] = audit_rows(db_session, "CREATE")
        assert row.changes["result"] == "FAILURE"
        assert row.changes["message"] == "Nope"
        assert row.changes["input"] == {"name": "Acme", "api_token": None}

    def test_unexpected_handler_error_is_audited_as_failure(self, db_session, workspace, admin_user):
        action = widget_action(
            Recorder(error=RuntimeError("disk full")),
            require_workspace=True,
            audit_action="CREATE",
            audit_resource_type="widget",
        )

        result = action(
            self._executor(db_session, admin_user), {"workspace_id": workspace.id, "name": "Acme"}
        )

        assert result.error_codes == ["server_error"]
        assert result.audit_trail is not None
        [row] = audit_rows(db_session, "CREATE")
        assert row.changes["result"] == "FAILURE"
        assert row.changes["message"] == "An unexpected error occurred"
        assert "disk full" not in str(row.changes)

    def test_handler_receives_injected_services(self, db_session, workspace, admin_user):
        audit_logger = AuditLogger(db_session)
        security = SecurityService(db_session, audit_logger)
        handler = Recorder()

        widget_action(handler, require_workspace=True)(
            self._executor(db_session, admin_user, security_service=security, audit_logger=audit_logger),
            {"workspace_id": workspace.id, "name": "Acme"},
        )

        context = handler.calls[0][1]
        assert context.audit_logger is audit_logger
        assert context.security is security

    def test_authorization_denial_is_not_audited(self, db_session, workspace, viewer_user):
        action = widget_action(
            Recorder(),
            require_workspace=True,
            authorization=AuthorizationConfig(required_permissions=(Permission.CUSTOMERS_CREATE,)),
            audit_action="CREATE",
            audit_resource_type="widget",
        )

        action(self._executor(db_session, viewer_user), {"workspace_id": workspace.id, "name": "A"})

        assert audit_rows(db_session) == []

    def test_audit_failure_does_not_change_result(
        self, db_session, workspace, admin_user, monkeypatch
    ):
        audit_logger = AuditLogger(db_session)

        def broken(entry):
            raise RuntimeError("audit store down")

        monkeypatch.setattr(audit_logger.repo, "append", broken)
        action = widget_action(
            Recorder(), require_workspace=True, audit_action="CREATE", audit_resource_type="widget"
        )

        result = action(
            self._executor(db_session, admin_user, audit_logger=audit_logger),
            {"workspace_id": workspace.id, "name": "Acme"},
        )

        assert result.success
        assert result.audit_trail is None

    def test_suspicious_activity_never_blocks(self, db_session, workspace, admin_user):
        audit_logger = AuditLogger(db_session)
        security = SecurityService(
            db_session, audit_logger, thresholds=SuspiciousActivityThresholds(max_actions_per_hour=0)
        )
        audit_logger.log_action(workspace.id, admin_user.id, "VIEW", "widget")
        action = widget_action(Recorder(), require_workspace=True)

        result = action(
            self._executor(db_session, admin_user, security_service=security, audit_logger=audit_logger),
            {"workspace_id": workspace.id, "name": "Acme"},
        )

        assert result.success
        assert audit_rows(db_session, "SECURITY_SUSPICIOUS_ACTIVITY_DETECTED")


class TestHelpers:
    def test_sanitize_for_audit_recurses(self):
        data = {"password": "x", "profile": {"secret_answer": "y", "city": "Oslo"}, "items": [{"token": "t"}]}

        assert sanitize_for_audit(data) == {
            "password": "[REDACTED]",
            "profile": {"secret_answer": "[REDACTED]", "city": "Oslo"},
            "items": [{"token": "[REDACTED]"}],
        }

    def test_sanitize_for_audit_keeps_unset_values(self):
        assert sanitize_for_audit({"api_token": None, "password": ""}) == {
            "api_token": None,
            "password": "[REDACTED]",
        }

    def test_extract_resource_id(self):
        class Obj:
            id = 5

        assert extract_resource_id({"id": 3}) == "3"
        assert extract_resource_id(Obj()) == "5"
        assert extract_resource_id(7) == "7"
        assert extract_resource_id(None) is None
        assert extract_resource_id(True) is None

    def test_failed_result_requires_errors(self):
        with pytest.raises(ValueError):
            ActionResult(success=False)


class TestRegistry:
    def test_business_actions_registered(self):
        names = list_actions()

        for name in ("workspaces.create", "customers.create", "invoices.update_status", "audit.logs"):
            assert name in names

    def test_unknown_action(self):
        with pytest.raises(NotFoundException) as exc_info:
            get_action("nope.nothing")

        assert exc_info.value.code == "action_not_found"

    def test_duplicate_registration_rejected(self):
        with pytest.raises(ValueError, match="already registered"):
            register(get_action("customers.create"))
