from datetime import datetime, UTC
from typing import Any

from sqlalchemy import DateTime, inspect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Naive UTC timestamp; every stored datetime uses this convention."""
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    def to_dict(self) -> dict[str, Any]:
        """Column snapshot used for audit old/new values."""
        return {attr.key: getattr(self, attr.key) for attr in inspect(self).mapper.column_attrs}


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )
