from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, Field, computed_field, model_validator
from typing import Optional

from bizdesk.models.invoice import InvoiceStatus
from bizdesk.schemas.common_schemas import WorkspaceInput, PageInput
from bizdesk.services import invoice_calculator


class LineItemInput(BaseModel):
    """One billable line"""

    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    unit_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)


class InvoiceCreate(WorkspaceInput):
    """Schema for creating a draft invoice with its line items"""

    customer_id: int = Field(..., gt=0)
    invoice_number: str = Field(..., min_length=1, max_length=50)
    issue_date: date
    due_date: Optional[date] = None
    tax_rate: Decimal = Field(
        default=Decimal("0"), ge=0, le=1, description="Tax rate as decimal (0.1 = 10%)"
    )
    notes: Optional[str] = Field(None, max_length=2000)
    line_items: list[LineItemInput] = Field(..., min_length=1)

    @model_validator(mode="after")
    def due_after_issue(self) -> "InvoiceCreate":
        if self.due_date is not None and self.due_date < self.issue_date:
            raise ValueError("Due date cannot be before the issue date")
        return self


class InvoiceUpdate(WorkspaceInput):
    """
    Schema for updating an invoice header.

    When ``line_items`` is given the existing lines are replaced and the
    totals recalculated.
    """

    invoice_id: int = Field(..., gt=0)
    customer_id: Optional[int] = Field(None, gt=0)
    invoice_number: Optional[str] = Field(None, min_length=1, max_length=50)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=1)
    notes: Optional[str] = Field(None, max_length=2000)
    line_items: Optional[list[LineItemInput]] = Field(None, min_length=1)


class InvoiceStatusUpdate(WorkspaceInput):
    invoice_id: int = Field(..., gt=0)
    status: InvoiceStatus


class InvoiceIdInput(WorkspaceInput):
    invoice_id: int = Field(..., gt=0)


class LineItemAdd(WorkspaceInput, LineItemInput):
    invoice_id: int = Field(..., gt=0)


class LineItemUpdate(WorkspaceInput):
    invoice_id: int = Field(..., gt=0)
    line_item_id: int = Field(..., gt=0)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    quantity: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    unit_price: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)


class LineItemRemove(WorkspaceInput):
    invoice_id: int = Field(..., gt=0)
    line_item_id: int = Field(..., gt=0)


class InvoiceTotalsInput(WorkspaceInput):
    """Line items and tax rate to price without saving anything"""

    line_items: list[LineItemInput] = Field(..., min_length=1)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)


class InvoiceListInput(WorkspaceInput, PageInput):
    """Schema for filtering invoices"""

    status: Optional[InvoiceStatus] = None
    customer_id: Optional[int] = Field(None, gt=0)
    issue_date_from: Optional[date] = None
    issue_date_to: Optional[date] = None
    search: Optional[str] = Field(None, min_length=1, max_length=50)


class LineItemResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal
    sort_order: int


class InvoiceSummaryResponse(BaseModel):
    """Invoice header without line items (list rows)"""

    model_config = {"from_attributes": True}

    id: int
    workspace_id: int
    customer_id: int
    invoice_number: str
    status: InvoiceStatus
    issue_date: date
    due_date: Optional[date]
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def balance_due(self) -> Decimal:
        return invoice_calculator.remaining_balance(self.total_amount, self.amount_paid)


class InvoiceResponse(InvoiceSummaryResponse):
    """Full invoice with line items"""

    line_items: list[LineItemResponse]


class InvoiceTotalsResponse(BaseModel):
    line_totals: list[Decimal]
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
