from datetime import datetime, timedelta
from decimal import Decimal

from bizdesk.models.action_context import RequestMetadata
from bizdesk.models.audit_log import AuditLog
from bizdesk.schemas.audit_schemas import AuditLogQuery
from bizdesk.services.audit_logger import AuditLogger, AuditLogEntry, compute_changes


class TestComputeChanges:
    def test_only_changed_fields(self):
        assert compute_changes({"a": 1, "b": 2}, {"a": 1, "b": 3}) == {"b": {"old": 2, "new": 3}}

    def test_new_field_counts_as_change(self):
        assert compute_changes({"a": 1}, {"a": 1, "c": 5}) == {"c": {"old": None, "new": 5}}

    def test_missing_side_gives_empty_diff(self):
        assert compute_changes(None, {"a": 1}) == {}
        assert compute_changes({"a": 1}, {}) == {}


class TestAuditWrites:
    """Rows written by each helper"""

    def test_log_create_stores_new_values(self, db_session, workspace, admin_user):
        logger = AuditLogger(db_session)
        values = {"name": "Initech", "email": "billing@initech.test"}

        row = logger.log_create(workspace.id, admin_user.id, "customer", 12, values)

        assert row.action == "CREATE"
        assert row.resource_id == "12"
        assert row.new_values == values
        assert row.changes == values
        assert row.old_values is None

    def test_log_update_records_diff(self, db_session, workspace, admin_user):
        row = AuditLogger(db_session).log_update(
            workspace.id, admin_user.id, "customer", 3, {"a": 1, "b": 2}, {"a": 1, "b": 3}
        )

        assert row.action == "UPDATE"
        assert row.changes == {"b": {"old": 2, "new": 3}}
        assert "a" not in row.changes
        assert row.old_values == {"a": 1, "b": 2}

    def test_log_delete_keeps_old_values(self, db_session, workspace, admin_user):
        row = AuditLogger(db_session).log_delete(
            workspace.id, admin_user.id, "task", 9, {"title": "Call supplier"}
        )

        assert row.action == "DELETE"
        assert row.old_values == {"title": "Call supplier"}
        assert row.new_values is None

    def test_log_action_uppercases_and_stores_details(self, db_session, workspace, admin_user):
        metadata = RequestMetadata(ip_address="203.0.113.9", user_agent="pytest")

        row = AuditLogger(db_session).log_action(
            workspace.id, admin_user.id, "archive", "customer", 4,
            details={"result": "SUCCESS"}, metadata=metadata,
        )

        assert row.action == "ARCHIVE"
        assert row.changes == {"result": "SUCCESS"}
        assert row.ip_address == "203.0.113.9"
        assert row.user_agent == "pytest"

    def test_values_are_json_encoded(self, db_session, workspace, admin_user):
        row = AuditLogger(db_session).log_create(
            workspace.id, admin_user.id, "expense", 1,
            {"amount": Decimal("12.50"), "expense_date": datetime(2026, 1, 2).date()},
        )

        assert row.new_values == {"amount": 12.5, "expense_date": "2026-01-02"}

    def test_write_failure_is_swallowed(self, db_session, workspace, admin_user, monkeypatch, caplog):
        logger = AuditLogger(db_session)

        def broken(entry):
            raise RuntimeError("disk full")

        monkeypatch.setattr(logger.repo, "append", broken)

        row = logger.log(AuditLogEntry(workspace.id, admin_user.id, "CREATE", "customer"))

        assert row is None
        assert "Audit logging failed" in caplog.text

    def test_rows_are_never_updated(self, db_session, workspace, admin_user):
        logger = AuditLogger(db_session)
        logger.log_create(workspace.id, admin_user.id, "customer", 1, {"name": "A"})
        logger.log_create(workspace.id, admin_user.id, "customer", 1, {"name": "B"})

        rows = db_session.query(AuditLog).order_by(AuditLog.id).all()

        assert [row.new_values["name"] for row in rows] == ["A", "B"]


class TestAuditQueries:
    """Filtered reads and statistics"""

    def _seed(self, db_session, workspace, other_workspace, admin_user, outsider_user):
        now = datetime(2026, 5, 10, 12, 0)
        times = iter([now - timedelta(days=3), now - timedelta(days=1), now, now])
        logger = AuditLogger(db_session, clock=lambda: next(times))
        logger.log_create(workspace.id, admin_user.id, "customer", 1, {"name": "A"})
        logger.log_update(workspace.id, admin_user.id, "customer", 1, {"name": "A"}, {"name": "B"})
        logger.log_delete(workspace.id, admin_user.id, "task", 2, {"title": "T"})
        logger.log_create(other_workspace.id, outsider_user.id, "customer", 5, {"name": "Z"})
        return now

    def test_logs_are_workspace_scoped_newest_first(
        self, db_session, workspace, other_workspace, admin_user, outsider_user
    ):
        self._seed(db_session, workspace, other_workspace, admin_user, outsider_user)

        rows, total = AuditLogger(db_session).get_audit_logs(
            workspace.id, AuditLogQuery(workspace_id=workspace.id)
        )

        assert total == 3
        assert [row.action for row in rows] == ["DELETE", "UPDATE", "CREATE"]

    def test_filters(self, db_session, workspace, other_workspace, admin_user, outsider_user):
        now = self._seed(db_session, workspace, other_workspace, admin_user, outsider_user)
        logger = AuditLogger(db_session)

        by_type, total = logger.get_audit_logs(
            workspace.id, AuditLogQuery(workspace_id=workspace.id, resource_type="customer")
        )
        assert total == 2

        by_action, _ = logger.get_audit_logs(
            workspace.id, AuditLogQuery(workspace_id=workspace.id, action="update")
        )
        assert [row.action for row in by_action] == ["UPDATE"]

        recent, _ = logger.get_audit_logs(
            workspace.id,
            AuditLogQuery(workspace_id=workspace.id, start_date=now - timedelta(days=2)),
        )
        assert len(recent) == 2

    def test_pagination(self, db_session, workspace, other_workspace, admin_user, outsider_user):
        self._seed(db_session, workspace, other_workspace, admin_user, outsider_user)

        rows, total = AuditLogger(db_session).get_audit_logs(
            workspace.id, AuditLogQuery(workspace_id=workspace.id, page=2, limit=2)
        )

        assert total == 3
        assert [row.action for row in rows] == ["CREATE"]

    def test_stats(self, db_session, workspace, other_workspace, admin_user, outsider_user):
        now = self._seed(db_session, workspace, other_workspace, admin_user, outsider_user)

        stats = AuditLogger(db_session, clock=lambda: now).get_audit_stats(workspace.id, days=2)

        assert stats.total_actions == 2
        assert stats.actions_by_type == {"UPDATE": 1, "DELETE": 1}
        assert stats.actions_by_resource == {"customer": 1, "task": 1}
        assert stats.daily_activity == {"2026-05-09": 1, "2026-05-10": 1}
