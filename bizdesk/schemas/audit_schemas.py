from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field

from bizdesk.config import settings
from bizdesk.schemas.common_schemas import WorkspaceInput, PageInput


class AuditLogQuery(WorkspaceInput, PageInput):
    """Filters for the workspace audit log (newest first)"""

    resource_type: Optional[str] = Field(None, max_length=50)
    resource_id: Optional[str] = Field(None, max_length=64)
    user_id: Optional[int] = Field(None, gt=0)
    action: Optional[str] = Field(None, max_length=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class AuditStatsQuery(WorkspaceInput):
    days: int = Field(default=settings.AUDIT_STATS_DEFAULT_DAYS, ge=1, le=365)


class AuditLogResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    workspace_id: Optional[int]
    user_id: Optional[int]
    action: str
    resource_type: str
    resource_id: Optional[str]
    old_values: Optional[Any]
    new_values: Optional[Any]
    changes: Optional[Any]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime


class AuditStats(BaseModel):
    total_actions: int
    actions_by_type: dict[str, int]
    actions_by_resource: dict[str, int]
    daily_activity: dict[str, int]
