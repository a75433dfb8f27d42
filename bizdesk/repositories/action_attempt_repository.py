from datetime import datetime
from sqlalchemy.orm import Session

from bizdesk.models.action_attempt import ActionAttempt


class ActionAttemptRepository:
    """Counts invocations per (user, action) for rate limiting"""

    def __init__(self, db: Session):
        self.db = db

    def count_since(self, user_id: int, action: str, start: datetime) -> int:
        return (
            self.db.query(ActionAttempt)
            .filter(
                ActionAttempt.user_id == user_id,
                ActionAttempt.action == action,
                ActionAttempt.created_at >= start,
            )
            .count()
        )

    def oldest_since(self, user_id: int, action: str, start: datetime) -> datetime | None:
        """Timestamp of the earliest attempt still inside the window"""
        attempt = (
            self.db.query(ActionAttempt)
            .filter(
                ActionAttempt.user_id == user_id,
                ActionAttempt.action == action,
                ActionAttempt.created_at >= start,
            )
            .order_by(ActionAttempt.created_at)
            .first()
        )
        return attempt.created_at if attempt else None

    def prune(self, user_id: int, action: str, before: datetime) -> int:
        """Drop this pair's attempts that fell out of its window (not committed)"""
        return (
            self.db.query(ActionAttempt)
            .filter(
                ActionAttempt.user_id == user_id,
                ActionAttempt.action == action,
                ActionAttempt.created_at < before,
            )
            .delete(synchronize_session=False)
        )

    def purge_older_than(self, before: datetime) -> int:
        """Drop every attempt older than ``before`` regardless of user or action (not committed)"""
        return (
            self.db.query(ActionAttempt)
            .filter(ActionAttempt.created_at < before)
            .delete(synchronize_session=False)
        )

    def record(self, user_id: int, action: str, at: datetime) -> ActionAttempt:
        attempt = ActionAttempt(user_id=user_id, action=action, created_at=at)
        self.db.add(attempt)
        self.db.commit()
        return attempt
