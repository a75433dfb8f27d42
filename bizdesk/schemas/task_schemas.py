from datetime import date, datetime
from enum import Enum as PyEnum
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional

from bizdesk.models.base import utc_now
from bizdesk.models.task import TaskStatus
from bizdesk.schemas.common_schemas import WorkspaceInput, PageInput


def _not_in_past(value: Optional[date]) -> Optional[date]:
    if value is not None and value < utc_now().date():
        raise ValueError("Due date cannot be in the past")
    return value


class TaskCreate(WorkspaceInput):
    """Schema for creating a task"""

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    assigned_to: Optional[int] = Field(None, gt=0, description="User id of a workspace member")
    due_date: Optional[date] = None

    @field_validator("due_date")
    @classmethod
    def due_date_not_in_past(cls, value: Optional[date]) -> Optional[date]:
        return _not_in_past(value)


class TaskUpdate(WorkspaceInput):
    task_id: int = Field(..., gt=0)
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    status: Optional[TaskStatus] = None
    due_date: Optional[date] = None

    @field_validator("due_date")
    @classmethod
    def due_date_not_in_past(cls, value: Optional[date]) -> Optional[date]:
        return _not_in_past(value)


class TaskAssign(WorkspaceInput):
    """Assign (or with None, unassign) a task"""

    task_id: int = Field(..., gt=0)
    assigned_to: Optional[int] = Field(None, gt=0)


class TaskIdInput(WorkspaceInput):
    task_id: int = Field(..., gt=0)


class BulkTaskOperation(str, PyEnum):
    COMPLETE = "complete"
    DELETE = "delete"
    ASSIGN = "assign"


class TaskBulkInput(WorkspaceInput):
    """Apply one operation to several tasks; ``assigned_to`` is required for assign"""

    task_ids: list[int] = Field(..., min_length=1, max_length=100)
    operation: BulkTaskOperation
    assigned_to: Optional[int] = Field(None, gt=0)

    @field_validator("task_ids")
    @classmethod
    def positive_unique_ids(cls, value: list[int]) -> list[int]:
        if any(task_id <= 0 for task_id in value):
            raise ValueError("Task ids must be positive")
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def assignee_for_assign(self) -> "TaskBulkInput":
        if self.operation == BulkTaskOperation.ASSIGN and self.assigned_to is None:
            raise ValueError("Assignee is required when operation is assign")
        return self


class TaskListInput(WorkspaceInput, PageInput):
    status: Optional[TaskStatus] = None
    assigned_to: Optional[int] = Field(None, gt=0)
    search: Optional[str] = Field(None, min_length=1, max_length=255)


class TaskResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    workspace_id: int
    title: str
    description: Optional[str]
    assigned_to: Optional[int]
    status: TaskStatus
    due_date: Optional[date]
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class TaskBulkItemResult(BaseModel):
    task_id: int
    success: bool
    error: Optional[str] = None


class TaskBulkResult(BaseModel):
    success_count: int
    failed_count: int
    results: list[TaskBulkItemResult]
