"""Repository for the append-only audit log."""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from bizdesk.models.audit_log import AuditLog


class AuditLogRepository:
    """
    Append and query audit rows.

    There is deliberately no update or delete method.
    """

    def __init__(self, db: Session):
        self.db = db

    def append(self, entry: AuditLog) -> AuditLog:
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def query(
        self,
        workspace_id: int,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[AuditLog], int]:
        """Filtered workspace rows, newest first, with the exact total count"""
        query = self.db.query(AuditLog).filter(AuditLog.workspace_id == workspace_id)
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)
        if resource_id:
            query = query.filter(AuditLog.resource_id == resource_id)
        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        if action:
            query = query.filter(AuditLog.action == action.upper())
        if start_date is not None:
            query = query.filter(AuditLog.created_at >= start_date)
        if end_date is not None:
            query = query.filter(AuditLog.created_at <= end_date)

        total = query.count()
        rows = (
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    def since(self, workspace_id: int, start: datetime) -> list[AuditLog]:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.workspace_id == workspace_id, AuditLog.created_at >= start)
            .all()
        )

    def for_user_since(
        self,
        user_id: int,
        workspace_id: int,
        start: datetime,
        action: Optional[str] = None,
    ) -> list[AuditLog]:
        """Rows one user produced in one workspace since ``start``"""
        query = self.db.query(AuditLog).filter(
            AuditLog.user_id == user_id,
            AuditLog.workspace_id == workspace_id,
            AuditLog.created_at >= start,
        )
        if action:
            query = query.filter(AuditLog.action == action)
        return query.all()
