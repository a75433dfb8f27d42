from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional

from bizdesk.schemas.common_schemas import WorkspaceInput


class MonthInput(WorkspaceInput):
    """Calendar month to report on; missing parts default to the current UTC month"""

    year: Optional[int] = Field(None, ge=2000, le=3000)
    month: Optional[int] = Field(None, ge=1, le=12)


class OutstandingInvoicesSummary(BaseModel):
    """
    Draft and sent invoices that still have a balance.

    ``total`` is the unpaid remainder; ``overdue_*`` covers sent invoices
    whose due date has passed.
    """

    total: Decimal
    count: int
    overdue_total: Decimal
    overdue_count: int
    draft_count: int
    sent_count: int
    billed_total: Decimal
    collected_percentage: Decimal


class MonthlyFinancials(BaseModel):
    year: int
    month: int
    income: Decimal
    expenses: Decimal
    net_income: Decimal
    payment_count: int
    expense_count: int


class FinancialComparison(BaseModel):
    income_change: Decimal
    income_change_percentage: Decimal
    expenses_change: Decimal
    expenses_change_percentage: Decimal
    net_income_change: Decimal
    net_income_change_percentage: Decimal


class MonthlyFinancialReport(BaseModel):
    """A month next to the month before it"""

    current: MonthlyFinancials
    previous: MonthlyFinancials
    comparison: FinancialComparison


class MetricTrend(BaseModel):
    current: Decimal
    previous: Decimal
    change: Decimal
    change_percentage: Decimal


class DashboardMetrics(BaseModel):
    outstanding_invoices: OutstandingInvoicesSummary
    monthly_income: MetricTrend
    monthly_expenses: MetricTrend
    total_customers: int
    pending_tasks: int


class FinancialAccuracyReport(BaseModel):
    is_accurate: bool
    invoices_checked: int
    discrepancies: list[str]
