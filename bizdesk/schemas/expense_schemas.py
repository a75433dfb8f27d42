from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional

from bizdesk.models.base import utc_now
from bizdesk.schemas.common_schemas import WorkspaceInput, PageInput

DEFAULT_EXPENSE_CATEGORIES = [
    "office_supplies",
    "travel",
    "meals",
    "software",
    "hardware",
    "marketing",
    "utilities",
    "rent",
    "professional_services",
    "other",
]


def _not_in_future(value: Optional[date]) -> Optional[date]:
    if value is not None and value > utc_now().date():
        raise ValueError("Expense date cannot be in the future")
    return value


class ExpenseCreate(WorkspaceInput):
    """Schema for creating an expense"""

    vendor: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    expense_date: date
    description: Optional[str] = Field(None, max_length=2000)
    receipt_url: Optional[str] = Field(None, max_length=500)

    @field_validator("expense_date")
    @classmethod
    def expense_date_not_in_future(cls, value: Optional[date]) -> Optional[date]:
        return _not_in_future(value)


class ExpenseUpdate(WorkspaceInput):
    expense_id: int = Field(..., gt=0)
    vendor: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    expense_date: Optional[date] = None
    description: Optional[str] = Field(None, max_length=2000)
    receipt_url: Optional[str] = Field(None, max_length=500)

    @field_validator("expense_date")
    @classmethod
    def expense_date_not_in_future(cls, value: Optional[date]) -> Optional[date]:
        return _not_in_future(value)


class ExpenseIdInput(WorkspaceInput):
    expense_id: int = Field(..., gt=0)


class ExpenseListInput(WorkspaceInput, PageInput):
    """Schema for filtering expenses"""

    category: Optional[str] = None
    vendor: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class ExpenseReportInput(WorkspaceInput):
    date_from: date
    date_to: date

    @model_validator(mode="after")
    def range_in_order(self) -> "ExpenseReportInput":
        if self.date_to < self.date_from:
            raise ValueError("date_to cannot be before date_from")
        return self


class ExpenseResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    workspace_id: int
    vendor: str
    category: str
    amount: Decimal
    expense_date: date
    description: Optional[str]
    receipt_url: Optional[str]
    created_at: datetime
    updated_at: datetime


class ExpenseReport(BaseModel):
    """Totals for a date range"""

    date_from: date
    date_to: date
    total: Decimal
    count: int
    by_category: dict[str, Decimal]
    by_vendor: dict[str, Decimal]
    by_month: dict[str, Decimal]
