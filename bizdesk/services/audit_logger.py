"""
Audit trail recorder.

Writing never raises to the caller: a failed insert is logged, rolled back
and forgotten so it cannot mask the outcome of the action being audited.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from bizdesk.models.action_context import RequestMetadata
from bizdesk.models.audit_log import AuditLog
from bizdesk.models.base import utc_now
from bizdesk.repositories.audit_log_repository import AuditLogRepository
from bizdesk.schemas.audit_schemas import AuditLogQuery, AuditStats

logger = logging.getLogger(__name__)


@dataclass
class AuditLogEntry:
    """One audit record before it is persisted"""

    workspace_id: int | None
    user_id: int | None
    action: str
    resource_type: str
    resource_id: str | None = None
    old_values: Any = None
    new_values: Any = None
    changes: Any = None
    ip_address: str | None = None
    user_agent: str | None = None


def compute_changes(old_values: dict | None, new_values: dict | None) -> dict[str, dict]:
    """
    Field-level diff keyed by the fields of ``new_values``.

    Unchanged fields are left out: ``{a:1,b:2} -> {a:1,b:3}`` gives
    ``{"b": {"old": 2, "new": 3}}``.
    """
    if not old_values or not new_values:
        return {}
    return {
        key: {"old": old_values.get(key), "new": value}
        for key, value in new_values.items()
        if old_values.get(key) != value
    }


class AuditLogger:
    """Appends audit rows and answers audit queries for one session"""

    def __init__(self, db: Session, clock: Callable = utc_now):
        self.db = db
        self.repo = AuditLogRepository(db)
        self.clock = clock

    def log(self, entry: AuditLogEntry) -> AuditLog | None:
        """Persist an entry; returns None (after logging) if the write failed"""
        try:
            row = AuditLog(
                workspace_id=entry.workspace_id,
                user_id=entry.user_id,
                action=entry.action,
                resource_type=entry.resource_type,
                resource_id=str(entry.resource_id) if entry.resource_id is not None else None,
                old_values=jsonable_encoder(entry.old_values),
                new_values=jsonable_encoder(entry.new_values),
                changes=jsonable_encoder(entry.changes),
                ip_address=entry.ip_address,
                user_agent=entry.user_agent,
                created_at=self.clock(),
            )
            return self.repo.append(row)
        except Exception:
            logger.exception(
                "Audit logging failed for %s %s", entry.action, entry.resource_type
            )
            self.db.rollback()
            return None

    def log_create(
        self,
        workspace_id: int,
        user_id: int | None,
        resource_type: str,
        resource_id: Any,
        new_values: Any,
        metadata: RequestMetadata | None = None,
    ) -> AuditLog | None:
        return self.log(
            self._entry(
                workspace_id, user_id, "CREATE", resource_type, resource_id, metadata,
                new_values=new_values, changes=new_values,
            )
        )

    def log_update(
        self,
        workspace_id: int,
        user_id: int | None,
        resource_type: str,
        resource_id: Any,
        old_values: Any,
        new_values: Any,
        metadata: RequestMetadata | None = None,
    ) -> AuditLog | None:
        old_json = jsonable_encoder(old_values)
        new_json = jsonable_encoder(new_values)
        return self.log(
            self._entry(
                workspace_id, user_id, "UPDATE", resource_type, resource_id, metadata,
                old_values=old_json, new_values=new_json,
                changes=compute_changes(old_json, new_json),
            )
        )

    def log_delete(
        self,
        workspace_id: int,
        user_id: int | None,
        resource_type: str,
        resource_id: Any,
        old_values: Any,
        metadata: RequestMetadata | None = None,
    ) -> AuditLog | None:
        return self.log(
            self._entry(
                workspace_id, user_id, "DELETE", resource_type, resource_id, metadata,
                old_values=old_values, changes=old_values,
            )
        )

    def log_action(
        self,
        workspace_id: int | None,
        user_id: int | None,
        action: str,
        resource_type: str,
        resource_id: Any = None,
        details: Any = None,
        metadata: RequestMetadata | None = None,
    ) -> AuditLog | None:
        """Custom verb; stored upper-cased with ``details`` as the change set"""
        return self.log(
            self._entry(
                workspace_id, user_id, action.upper(), resource_type, resource_id, metadata,
                changes=details,
            )
        )

    def get_audit_logs(self, workspace_id: int, filters: AuditLogQuery) -> tuple[list[AuditLog], int]:
        return self.repo.query(
            workspace_id,
            resource_type=filters.resource_type,
            resource_id=filters.resource_id,
            user_id=filters.user_id,
            action=filters.action,
            start_date=filters.start_date,
            end_date=filters.end_date,
            offset=filters.offset,
            limit=filters.limit,
        )

    def get_audit_stats(self, workspace_id: int, days: int = 30) -> AuditStats:
        """Counts by action, by resource type and by day over the last ``days`` days"""
        rows = self.repo.since(workspace_id, self.clock() - timedelta(days=days))
        by_type = Counter(row.action for row in rows)
        by_resource = Counter(row.resource_type for row in rows)
        daily = Counter(row.created_at.date().isoformat() for row in rows)
        return AuditStats(
            total_actions=len(rows),
            actions_by_type=dict(by_type),
            actions_by_resource=dict(by_resource),
            daily_activity=dict(sorted(daily.items())),
        )

    @staticmethod
    def _entry(
        workspace_id, user_id, action, resource_type, resource_id, metadata, **values
    ) -> AuditLogEntry:
        metadata = metadata or RequestMetadata()
        return AuditLogEntry(
            workspace_id=workspace_id,
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            ip_address=metadata.ip_address,
            user_agent=metadata.user_agent,
            **values,
        )
