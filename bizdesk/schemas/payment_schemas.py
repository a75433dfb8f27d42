from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional

from bizdesk.schemas.common_schemas import WorkspaceInput


class PaymentMethod(str, Enum):
    CASH = "cash"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"
    STRIPE = "stripe"
    OTHER = "other"


class PaymentCreate(WorkspaceInput):
    """Record a payment against an invoice"""

    invoice_id: int = Field(..., gt=0)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    payment_date: date
    payment_method: Optional[PaymentMethod] = None
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=2000)


class PaymentUpdate(WorkspaceInput):
    payment_id: int = Field(..., gt=0)
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    payment_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=2000)


class PaymentIdInput(WorkspaceInput):
    payment_id: int = Field(..., gt=0)


class PaymentListInput(WorkspaceInput):
    invoice_id: int = Field(..., gt=0)


class PaymentResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    workspace_id: int
    invoice_id: int
    amount: Decimal
    payment_date: date
    payment_method: Optional[str]
    reference: Optional[str]
    notes: Optional[str]
    created_at: datetime
