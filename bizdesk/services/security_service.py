"""
Security screening, rate limiting and suspicious-activity detection.

Constructed per invocation with the session and audit logger it should use.
Monitoring never blocks a request: rate-limit storage failures degrade open
when the policy says so, and the suspicious-activity check only reports.
"""

import logging
import os
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bizdesk.config import settings
from bizdesk.core import sanitization
from bizdesk.models.action_context import RequestMetadata
from bizdesk.models.base import utc_now
from bizdesk.repositories.action_attempt_repository import ActionAttemptRepository
from bizdesk.repositories.audit_log_repository import AuditLogRepository
from bizdesk.services.audit_logger import AuditLogger

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

ALLOWED_UPLOAD_EXTENSIONS = frozenset(
    {".pdf", ".jpg", ".jpeg", ".png", ".gif", ".doc", ".docx", ".xls", ".xlsx"}
)

ALLOWED_UPLOAD_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "image/jpeg",
        "image/png",
        "image/gif",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    }
)

DANGEROUS_UPLOAD_EXTENSIONS = frozenset(
    {".exe", ".bat", ".cmd", ".scr", ".pif", ".com", ".php", ".asp", ".jsp", ".js", ".sh", ".bash", ".zsh"}
)

TOKEN_ALPHABET = string.ascii_letters + string.digits


@dataclass(frozen=True)
class SuspiciousActivityThresholds:
    """Limits above which activity is reported (never blocked)"""

    max_actions_per_hour: int = 50
    max_distinct_ips: int = 3
    max_deletes_per_day: int = 10
    max_off_hours_actions: int = 5
    off_hours_start: int = 22
    off_hours_end: int = 6

    @classmethod
    def from_settings(cls) -> "SuspiciousActivityThresholds":
        return cls(
            max_actions_per_hour=settings.SUSPICIOUS_MAX_ACTIONS_PER_HOUR,
            max_distinct_ips=settings.SUSPICIOUS_MAX_DISTINCT_IPS,
            max_deletes_per_day=settings.SUSPICIOUS_MAX_DELETES_PER_DAY,
            max_off_hours_actions=settings.SUSPICIOUS_MAX_OFF_HOURS_ACTIONS,
            off_hours_start=settings.OFF_HOURS_START,
            off_hours_end=settings.OFF_HOURS_END,
        )

    def is_off_hours(self, moment: datetime) -> bool:
        """Before off_hours_end or after off_hours_start (22:xx counts as daytime)"""
        return moment.hour < self.off_hours_end or moment.hour > self.off_hours_start


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    remaining_attempts: int
    reset_time: datetime
    degraded: bool = False


@dataclass
class SuspiciousActivityReport:
    suspicious: bool = False
    reasons: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FileUploadResult:
    valid: bool
    errors: list[str]


class SecurityService:
    """Input screening plus monitoring hooks used by the action executor"""

    def __init__(
        self,
        db: Session,
        audit_logger: AuditLogger,
        thresholds: SuspiciousActivityThresholds | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.audit_logger = audit_logger
        self.thresholds = thresholds or SuspiciousActivityThresholds.from_settings()
        self.clock = clock
        self.attempt_repo = ActionAttemptRepository(db)
        self.audit_repo = AuditLogRepository(db)

    # Screening

    def sanitize_input(self, value: Any) -> Any:
        return sanitization.sanitize_input(value)

    def validate_sql_params(self, params: Any) -> bool:
        offending = sanitization.find_sql_injection(params)
        if offending is not None:
            logger.warning("Potential SQL injection attempt detected: %r", offending[:200])
            return False
        return True

    # Rate limiting

    def check_rate_limit(
        self,
        user_id: int,
        action: str,
        window_minutes: int = 5,
        max_attempts: int = 10,
        degrade_open: bool = True,
    ) -> RateLimitStatus:
        """
        Count this (user, action) pair's attempts in the rolling window.

        An allowed attempt is recorded and counts toward later calls; a denied
        one is not. Recording also deletes this pair's attempts that left the
        window and any attempt past the retention period. When the attempt
        store fails and ``degrade_open`` is set the request is allowed;
        otherwise the storage error propagates.
        """
        now = self.clock()
        window = timedelta(minutes=window_minutes)
        window_start = now - window
        try:
            count = self.attempt_repo.count_since(user_id, action, window_start)
            if count >= max_attempts:
                oldest = self.attempt_repo.oldest_since(user_id, action, window_start)
                reset_time = (oldest or now) + window
                logger.warning(
                    "Rate limit exceeded: user=%s action=%s attempts=%s", user_id, action, count
                )
                self.log_security_event(
                    "RATE_LIMIT_EXCEEDED",
                    user_id,
                    {
                        "action": action,
                        "attempt_count": count,
                        "max_attempts": max_attempts,
                        "window_minutes": window_minutes,
                    },
                )
                return RateLimitStatus(allowed=False, remaining_attempts=0, reset_time=reset_time)

            self.attempt_repo.prune(user_id, action, window_start)
            self.attempt_repo.purge_older_than(
                now - timedelta(minutes=settings.RATE_LIMIT_RETENTION_MINUTES)
            )
            self.attempt_repo.record(user_id, action, now)
            return RateLimitStatus(
                allowed=True,
                remaining_attempts=max(0, max_attempts - count - 1),
                reset_time=now + window,
            )
        except SQLAlchemyError:
            if not degrade_open:
                raise
            logger.exception("Rate limit check failed; allowing request")
            self.db.rollback()
            return RateLimitStatus(
                allowed=True,
                remaining_attempts=max_attempts,
                reset_time=now + window,
                degraded=True,
            )

    # Suspicious activity

    def detect_suspicious_activity(
        self,
        user_id: int,
        workspace_id: int,
        action: str,
        metadata: RequestMetadata | None = None,
        resource_type: str | None = None,
    ) -> SuspiciousActivityReport:
        """
        Heuristics over the caller's recent audit rows in this workspace.

        Detection only: the report is logged and recorded as a security event
        but never blocks. Any failure yields a clean report.
        """
        report = SuspiciousActivityReport()
        limits = self.thresholds
        try:
            now = self.clock()
            hour_ago = now - timedelta(hours=1)
            day_ago = now - timedelta(days=1)

            recent = self.audit_repo.for_user_since(user_id, workspace_id, hour_ago)
            if len(recent) > limits.max_actions_per_hour:
                report.reasons.append("Excessive activity in the last hour")

            if metadata and metadata.ip_address:
                ips = {row.ip_address for row in recent if row.ip_address}
                ips.add(metadata.ip_address)
                if len(ips) > limits.max_distinct_ips:
                    report.reasons.append("Multiple IP addresses used recently")

            if action.upper() == "DELETE":
                deletes = self.audit_repo.for_user_since(
                    user_id, workspace_id, day_ago, action="DELETE"
                )
                if len(deletes) > limits.max_deletes_per_day:
                    report.reasons.append("Unusual number of delete operations")

            if limits.is_off_hours(now):
                last_day = self.audit_repo.for_user_since(user_id, workspace_id, day_ago)
                off_hours = [row for row in last_day if limits.is_off_hours(row.created_at)]
                if len(off_hours) > limits.max_off_hours_actions:
                    report.reasons.append("Unusual off-hours activity pattern")

            report.suspicious = bool(report.reasons)
        except SQLAlchemyError:
            logger.exception("Suspicious activity detection failed")
            self.db.rollback()
            return SuspiciousActivityReport()

        if report.suspicious:
            logger.warning(
                "Suspicious activity: user=%s workspace=%s reasons=%s",
                user_id,
                workspace_id,
                report.reasons,
            )
            self.log_security_event(
                "SUSPICIOUS_ACTIVITY_DETECTED",
                user_id,
                {
                    "action": action,
                    "resource_type": resource_type,
                    "reasons": report.reasons,
                    "ip_address": metadata.ip_address if metadata else None,
                    "user_agent": metadata.user_agent if metadata else None,
                },
                workspace_id=workspace_id,
                metadata=metadata,
            )
        return report

    def log_security_event(
        self,
        event_type: str,
        user_id: int | None,
        details: Any,
        workspace_id: int | None = None,
        metadata: RequestMetadata | None = None,
    ) -> None:
        """Warn and append a ``SECURITY_<event>`` audit row (workspace may be unknown)"""
        logger.warning(
            "Security event [%s]: user=%s workspace=%s", event_type, user_id, workspace_id
        )
        self.audit_logger.log_action(
            workspace_id,
            user_id,
            f"SECURITY_{event_type}",
            "security_event",
            details=details,
            metadata=metadata,
        )

    # Helpers

    def validate_file_upload(self, file_name: str, file_size: int, content_type: str) -> FileUploadResult:
        """Size limit, extension and MIME allow-lists, executable-type rejection"""
        errors = []
        if file_size > MAX_UPLOAD_BYTES:
            errors.append("File size exceeds 10MB limit")

        extension = os.path.splitext(file_name.lower())[1]
        if extension not in ALLOWED_UPLOAD_EXTENSIONS:
            errors.append("File type not allowed")

        if content_type.lower() not in ALLOWED_UPLOAD_MIME_TYPES:
            errors.append("Invalid file MIME type")

        if extension in DANGEROUS_UPLOAD_EXTENSIONS:
            errors.append("Potentially dangerous file type")

        return FileUploadResult(valid=not errors, errors=errors)

    @staticmethod
    def generate_secure_token(length: int = 32) -> str:
        """Random alphanumeric token from the OS CSPRNG"""
        if length < 1:
            raise ValueError("Token length must be positive")
        return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))
