"""
Workspace financial figures for the dashboard.

Income is counted when payments are received (payment_date), expenses by
expense_date. All money is Decimal, rounded half-up to cents by the invoice
calculator; every query goes through workspace-scoped repositories.
"""

import calendar
import logging
from datetime import date
from decimal import Decimal
from typing import Callable

from sqlalchemy.orm import Session

from bizdesk.models.base import utc_now
from bizdesk.models.invoice import InvoiceStatus
from bizdesk.repositories.customer_repository import CustomerRepository
from bizdesk.repositories.expense_repository import ExpenseRepository
from bizdesk.repositories.invoice_repository import InvoiceRepository
from bizdesk.repositories.payment_repository import PaymentRepository
from bizdesk.repositories.task_repository import TaskRepository
from bizdesk.schemas.dashboard_schemas import (
    DashboardMetrics,
    FinancialAccuracyReport,
    FinancialComparison,
    MetricTrend,
    MonthlyFinancialReport,
    MonthlyFinancials,
    OutstandingInvoicesSummary,
)
from bizdesk.services import invoice_calculator
from bizdesk.services.invoice_calculator import ZERO, to_cents

logger = logging.getLogger(__name__)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of a calendar month"""
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def previous_month(year: int, month: int) -> tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)


def percent_change(change: Decimal, base: Decimal) -> Decimal:
    """Change relative to ``abs(base)`` in percent; 0 when there is no base"""
    if base == 0:
        return ZERO
    return to_cents(change / abs(base) * 100)


class DashboardMetricsService:
    """Read-only financial aggregates for one workspace"""

    def __init__(self, db: Session, clock: Callable = utc_now):
        self.db = db
        self.clock = clock

    def current_month(self) -> tuple[int, int]:
        today = self.clock().date()
        return today.year, today.month

    def outstanding_invoices(self, workspace_id: int) -> OutstandingInvoicesSummary:
        today = self.clock().date()
        total = overdue_total = billed = collected = ZERO
        count = overdue_count = draft_count = sent_count = 0

        for invoice in InvoiceRepository(self.db).open_invoices(workspace_id):
            balance = invoice_calculator.remaining_balance(invoice.total_amount, invoice.amount_paid)
            if balance == 0:
                continue
            count += 1
            total += balance
            billed += invoice.total_amount
            collected += invoice.amount_paid
            if invoice.status == InvoiceStatus.DRAFT:
                draft_count += 1
            else:
                sent_count += 1
                if invoice.due_date is not None and invoice.due_date < today:
                    overdue_count += 1
                    overdue_total += balance

        return OutstandingInvoicesSummary(
            total=to_cents(total),
            count=count,
            overdue_total=to_cents(overdue_total),
            overdue_count=overdue_count,
            draft_count=draft_count,
            sent_count=sent_count,
            billed_total=to_cents(billed),
            collected_percentage=invoice_calculator.payment_percentage(billed, collected),
        )

    def month(self, workspace_id: int, year: int, month: int) -> MonthlyFinancials:
        start, end = month_bounds(year, month)
        income, payment_count = PaymentRepository(self.db).total_in_range(workspace_id, start, end)
        expenses, expense_count = ExpenseRepository(self.db).total_in_range(workspace_id, start, end)
        income, expenses = to_cents(income), to_cents(expenses)
        return MonthlyFinancials(
            year=year,
            month=month,
            income=income,
            expenses=expenses,
            net_income=income - expenses,
            payment_count=payment_count,
            expense_count=expense_count,
        )

    def monthly_income(self, workspace_id: int, year: int | None = None, month: int | None = None) -> Decimal:
        return self.month(workspace_id, *self._resolve(year, month)).income

    def monthly_expenses(self, workspace_id: int, year: int | None = None, month: int | None = None) -> Decimal:
        return self.month(workspace_id, *self._resolve(year, month)).expenses

    def monthly_financials(
        self, workspace_id: int, year: int | None = None, month: int | None = None
    ) -> MonthlyFinancialReport:
        """The requested month (default: current) compared with the month before"""
        year, month = self._resolve(year, month)
        current = self.month(workspace_id, year, month)
        previous = self.month(workspace_id, *previous_month(year, month))

        income_change = current.income - previous.income
        expenses_change = current.expenses - previous.expenses
        net_change = current.net_income - previous.net_income
        return MonthlyFinancialReport(
            current=current,
            previous=previous,
            comparison=FinancialComparison(
                income_change=income_change,
                income_change_percentage=percent_change(income_change, previous.income),
                expenses_change=expenses_change,
                expenses_change_percentage=percent_change(expenses_change, previous.expenses),
                net_income_change=net_change,
                net_income_change_percentage=percent_change(net_change, previous.net_income),
            ),
        )

    def total_customers(self, workspace_id: int) -> int:
        """Active (non-archived) customers"""
        return CustomerRepository(self.db).count_active(workspace_id)

    def pending_tasks(self, workspace_id: int) -> int:
        return TaskRepository(self.db).count_open(workspace_id)

    def dashboard_metrics(self, workspace_id: int) -> DashboardMetrics:
        report = self.monthly_financials(workspace_id)
        comparison = report.comparison
        return DashboardMetrics(
            outstanding_invoices=self.outstanding_invoices(workspace_id),
            monthly_income=MetricTrend(
                current=report.current.income,
                previous=report.previous.income,
                change=comparison.income_change,
                change_percentage=comparison.income_change_percentage,
            ),
            monthly_expenses=MetricTrend(
                current=report.current.expenses,
                previous=report.previous.expenses,
                change=comparison.expenses_change,
                change_percentage=comparison.expenses_change_percentage,
            ),
            total_customers=self.total_customers(workspace_id),
            pending_tasks=self.pending_tasks(workspace_id),
        )

    def validate_financial_accuracy(self, workspace_id: int) -> FinancialAccuracyReport:
        """
        Recompute every invoice from its line items and payments and list
        where the stored figures disagree.
        """
        invoices = InvoiceRepository(self.db).list_all(workspace_id)
        payments = PaymentRepository(self.db)
        discrepancies = []

        for invoice in invoices:
            label = f"Invoice {invoice.invoice_number}"
            for item in invoice.line_items:
                expected_line = invoice_calculator.line_item_total(item.quantity, item.unit_price)
                if to_cents(item.total) != expected_line:
                    discrepancies.append(
                        f"{label}: line '{item.description}' total {to_cents(item.total)} "
                        f"should be {expected_line}"
                    )

            totals = invoice_calculator.calculate_totals(invoice.line_items, invoice.tax_rate)
            if to_cents(invoice.subtotal) != totals.subtotal:
                discrepancies.append(
                    f"{label}: subtotal {to_cents(invoice.subtotal)} should be {totals.subtotal}"
                )
            if to_cents(invoice.total_amount) != totals.total_amount:
                discrepancies.append(
                    f"{label}: total {to_cents(invoice.total_amount)} should be {totals.total_amount}"
                )

            paid = to_cents(payments.total_for_invoice(workspace_id, invoice.id))
            if to_cents(invoice.amount_paid) != paid:
                discrepancies.append(
                    f"{label}: amount paid {to_cents(invoice.amount_paid)} "
                    f"does not match recorded payments {paid}"
                )
            if invoice.status == InvoiceStatus.PAID and not invoice_calculator.is_fully_paid(
                invoice.total_amount, paid
            ):
                balance = invoice_calculator.remaining_balance(invoice.total_amount, paid)
                discrepancies.append(f"{label}: marked paid with {balance} outstanding")

        if discrepancies:
            logger.warning(
                "Workspace %s has %d financial discrepancies", workspace_id, len(discrepancies)
            )
        return FinancialAccuracyReport(
            is_accurate=not discrepancies,
            invoices_checked=len(invoices),
            discrepancies=discrepancies,
        )

    def _resolve(self, year: int | None, month: int | None) -> tuple[int, int]:
        current_year, current_month = self.current_month()
        return year or current_year, month or current_month
