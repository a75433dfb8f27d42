import pytest
from datetime import datetime, timedelta
from sqlalchemy.exc import SQLAlchemyError

from bizdesk.config import settings
from bizdesk.core.sanitization import sanitize_input, sanitize_string, validate_sql_params
from bizdesk.models.action_attempt import ActionAttempt
from bizdesk.models.action_context import RequestMetadata
from bizdesk.models.audit_log import AuditLog
from bizdesk.services.audit_logger import AuditLogger
from bizdesk.services.security_service import (
    SecurityService,
    SuspiciousActivityThresholds,
)

T0 = datetime(2026, 3, 3, 14, 0, 0)


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock(T0)


@pytest.fixture
def security(db_session, clock):
    return SecurityService(db_session, AuditLogger(db_session, clock=clock), clock=clock)


class TestSanitization:
    """Markup stripping"""

    def test_script_block_removed(self):
        assert sanitize_input({"name": "<script>alert(1)</script>Acme"}) == {"name": "Acme"}

    def test_iframe_and_event_handlers_removed(self):
        assert sanitize_string('<iframe src="x"></iframe>Hi') == "Hi"
        assert sanitize_string('<b onclick="steal()">Hi</b>') == '<b "steal()">Hi</b>'

    def test_dangerous_schemes_removed(self):
        assert sanitize_string("javascript:alert(1)") == "alert(1)"

    def test_nested_tokens_do_not_survive(self):
        assert sanitize_string("javajavascript:script:alert(1)") == "alert(1)"

    @pytest.mark.parametrize(
        "value",
        [
            "<script>x</script>plain",
            "javajavascript:script:go",
            "<img src=x onerror=alert(1)>text",
            "  padded  ",
            "already clean",
        ],
    )
    def test_sanitize_is_idempotent(self, value):
        once = sanitize_string(value)

        assert sanitize_string(once) == once

    def test_nested_structures(self):
        data = {"items": [{"note": "<script>x</script>ok"}], "count": 3, "flag": None}

        assert sanitize_input(data) == {"items": [{"note": "ok"}], "count": 3, "flag": None}


class TestSqlScreening:
    def test_injection_rejected(self):
        assert validate_sql_params({"name": "'; DROP TABLE customers; --"}) is False

    def test_nested_injection_rejected(self):
        assert validate_sql_params({"items": [{"description": "1 UNION SELECT password"}]}) is False

    def test_keyword_match_is_case_insensitive(self):
        assert validate_sql_params({"search": "drop table"}) is False

    def test_comment_markers_rejected(self):
        assert validate_sql_params({"notes": "hello /* there"}) is False

    def test_plain_business_values_pass(self):
        assert validate_sql_params(
            {"name": "Acme Corp", "email": "billing@acme.test", "amount": 12, "tags": ["a", "b"]}
        )

    def test_service_logs_and_returns_false(self, security, caplog):
        with caplog.at_level("WARNING"):
            assert security.validate_sql_params({"q": "1; DROP TABLE x"}) is False

        assert "Potential SQL injection attempt" in caplog.text


class TestRateLimit:
    """Rolling window per (user, action)"""

    def test_third_attempt_in_window_denied(self, security, clock, admin_user, db_session):
        first = security.check_rate_limit(admin_user.id, "customers.create", 5, 2)
        clock.now = T0 + timedelta(minutes=1)
        second = security.check_rate_limit(admin_user.id, "customers.create", 5, 2)
        clock.now = T0 + timedelta(minutes=2)
        third = security.check_rate_limit(admin_user.id, "customers.create", 5, 2)

        assert first.allowed and first.remaining_attempts == 1
        assert second.allowed and second.remaining_attempts == 0
        assert not third.allowed
        assert third.remaining_attempts == 0
        assert third.reset_time == T0 + timedelta(minutes=5)

        event = db_session.query(AuditLog).filter(
            AuditLog.action == "SECURITY_RATE_LIMIT_EXCEEDED"
        ).one()
        assert event.workspace_id is None
        assert event.user_id == admin_user.id
        assert event.resource_type == "security_event"
        assert event.changes["attempt_count"] == 2

    def test_denied_attempts_are_not_recorded(self, security, clock, admin_user):
        for _ in range(2):
            security.check_rate_limit(admin_user.id, "invite", 5, 2)
        for _ in range(3):
            assert not security.check_rate_limit(admin_user.id, "invite", 5, 2).allowed

        assert security.attempt_repo.count_since(admin_user.id, "invite", T0 - timedelta(hours=1)) == 2

    def test_window_rolls_forward(self, security, clock, admin_user):
        security.check_rate_limit(admin_user.id, "invite", 5, 2)
        clock.now = T0 + timedelta(minutes=1)
        security.check_rate_limit(admin_user.id, "invite", 5, 2)

        clock.now = T0 + timedelta(minutes=5, seconds=30)

        assert security.check_rate_limit(admin_user.id, "invite", 5, 2).allowed

    def test_actions_and_users_are_independent(self, security, admin_user, member_user):
        security.check_rate_limit(admin_user.id, "a", 5, 1)

        assert not security.check_rate_limit(admin_user.id, "a", 5, 1).allowed
        assert security.check_rate_limit(admin_user.id, "b", 5, 1).allowed
        assert security.check_rate_limit(member_user.id, "a", 5, 1).allowed

    def test_attempts_outside_window_are_pruned(self, security, clock, admin_user, member_user, db_session):
        security.check_rate_limit(admin_user.id, "invite", 5, 2)
        security.check_rate_limit(member_user.id, "export", 60, 2)
        clock.now = T0 + timedelta(minutes=10)

        security.check_rate_limit(admin_user.id, "invite", 5, 2)

        rows = db_session.query(ActionAttempt).order_by(ActionAttempt.id).all()
        assert [(row.user_id, row.action, row.created_at) for row in rows] == [
            (member_user.id, "export", T0),
            (admin_user.id, "invite", T0 + timedelta(minutes=10)),
        ]

    def test_attempts_past_retention_are_purged(self, security, clock, admin_user, member_user, db_session):
        security.check_rate_limit(member_user.id, "export", 60, 2)
        clock.now = T0 + timedelta(minutes=settings.RATE_LIMIT_RETENTION_MINUTES + 1)

        security.check_rate_limit(admin_user.id, "invite", 5, 2)

        rows = db_session.query(ActionAttempt).all()
        assert [(row.user_id, row.action) for row in rows] == [(admin_user.id, "invite")]

    def test_storage_failure_degrades_open(self, security, admin_user, monkeypatch):
        def broken(*args, **kwargs):
            raise SQLAlchemyError("attempt store unavailable")

        monkeypatch.setattr(security.attempt_repo, "count_since", broken)

        status = security.check_rate_limit(admin_user.id, "invite", 5, 2)

        assert status.allowed
        assert status.degraded

    def test_storage_failure_propagates_when_closed(self, security, admin_user, monkeypatch):
        def broken(*args, **kwargs):
            raise SQLAlchemyError("attempt store unavailable")

        monkeypatch.setattr(security.attempt_repo, "count_since", broken)

        with pytest.raises(SQLAlchemyError):
            security.check_rate_limit(admin_user.id, "invite", 5, 2, degrade_open=False)


class TestSuspiciousActivity:
    """Detection reports and records, never blocks"""

    def _service(self, db_session, clock, **limits):
        return SecurityService(
            db_session,
            AuditLogger(db_session, clock=clock),
            thresholds=SuspiciousActivityThresholds(**limits),
            clock=clock,
        )

    def _security_events(self, db_session):
        return (
            db_session.query(AuditLog)
            .filter(AuditLog.action == "SECURITY_SUSPICIOUS_ACTIVITY_DETECTED")
            .all()
        )

    def test_quiet_user_is_clean(self, db_session, clock, workspace, admin_user):
        service = self._service(db_session, clock)

        report = service.detect_suspicious_activity(admin_user.id, workspace.id, "CREATE")

        assert not report.suspicious
        assert report.reasons == []
        assert self._security_events(db_session) == []

    def test_excessive_hourly_activity(self, db_session, clock, workspace, admin_user):
        service = self._service(db_session, clock, max_actions_per_hour=2)
        for _ in range(3):
            service.audit_logger.log_action(workspace.id, admin_user.id, "VIEW", "customer")

        report = service.detect_suspicious_activity(admin_user.id, workspace.id, "VIEW")

        assert report.suspicious
        assert "Excessive activity in the last hour" in report.reasons
        [event] = self._security_events(db_session)
        assert event.workspace_id == workspace.id
        assert event.changes["reasons"] == report.reasons

    def test_many_ip_addresses(self, db_session, clock, workspace, admin_user):
        service = self._service(db_session, clock, max_distinct_ips=2)
        for ip in ("10.0.0.1", "10.0.0.2"):
            service.audit_logger.log_action(
                workspace.id, admin_user.id, "VIEW", "customer",
                metadata=RequestMetadata(ip_address=ip),
            )

        report = service.detect_suspicious_activity(
            admin_user.id, workspace.id, "VIEW", metadata=RequestMetadata(ip_address="10.0.0.3")
        )

        assert report.reasons == ["Multiple IP addresses used recently"]

    def test_many_deletes(self, db_session, clock, workspace, admin_user):
        service = self._service(db_session, clock, max_deletes_per_day=1)
        for resource_id in (1, 2):
            service.audit_logger.log_delete(workspace.id, admin_user.id, "task", resource_id, {})

        report = service.detect_suspicious_activity(admin_user.id, workspace.id, "delete")

        assert "Unusual number of delete operations" in report.reasons

    def test_off_hours_pattern(self, db_session, clock, workspace, admin_user):
        clock.now = datetime(2026, 3, 3, 23, 30)
        service = self._service(db_session, clock, max_off_hours_actions=1)
        for _ in range(2):
            service.audit_logger.log_action(workspace.id, admin_user.id, "VIEW", "invoice")

        report = service.detect_suspicious_activity(admin_user.id, workspace.id, "VIEW")

        assert "Unusual off-hours activity pattern" in report.reasons

    def test_off_hours_window(self):
        limits = SuspiciousActivityThresholds()

        assert limits.is_off_hours(datetime(2026, 1, 1, 23, 0))
        assert limits.is_off_hours(datetime(2026, 1, 1, 5, 59))
        assert not limits.is_off_hours(datetime(2026, 1, 1, 22, 30))
        assert not limits.is_off_hours(datetime(2026, 1, 1, 6, 0))

    def test_detection_failure_yields_clean_report(
        self, db_session, clock, workspace, admin_user, monkeypatch
    ):
        service = self._service(db_session, clock, max_actions_per_hour=0)

        def broken(*args, **kwargs):
            raise SQLAlchemyError("audit store unavailable")

        monkeypatch.setattr(service.audit_repo, "for_user_since", broken)

        report = service.detect_suspicious_activity(admin_user.id, workspace.id, "VIEW")

        assert not report.suspicious


class TestFileUpload:
    def test_pdf_accepted(self, security):
        result = security.validate_file_upload("receipt.PDF", 2048, "application/pdf")

        assert result.valid
        assert result.errors == []

    def test_too_large(self, security):
        result = security.validate_file_upload("scan.png", 11 * 1024 * 1024, "image/png")

        assert result.errors == ["File size exceeds 10MB limit"]

    def test_executable_rejected(self, security):
        result = security.validate_file_upload("setup.exe", 100, "application/octet-stream")

        assert not result.valid
        assert "File type not allowed" in result.errors
        assert "Invalid file MIME type" in result.errors
        assert "Potentially dangerous file type" in result.errors


class TestSecureToken:
    def test_length_and_alphabet(self):
        token = SecurityService.generate_secure_token(40)

        assert len(token) == 40
        assert token.isalnum()

    def test_tokens_differ(self):
        assert SecurityService.generate_secure_token() != SecurityService.generate_secure_token()

    def test_invalid_length(self):
        with pytest.raises(ValueError):
            SecurityService.generate_secure_token(0)
