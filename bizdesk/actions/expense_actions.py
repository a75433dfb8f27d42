"""Expense actions and the expense report."""

from collections import defaultdict
from decimal import Decimal

from bizdesk.actions.registry import workspace_action
from bizdesk.models.action_context import ServerActionContext
from bizdesk.models.expense import Expense
from bizdesk.models.permission import Permission
from bizdesk.models.role import WorkspaceRole
from bizdesk.repositories.expense_repository import ExpenseRepository
from bizdesk.schemas.action_schemas import success_result
from bizdesk.schemas.common_schemas import Page, DeleteResponse, WorkspaceInput
from bizdesk.schemas.expense_schemas import (
    DEFAULT_EXPENSE_CATEGORIES,
    ExpenseCreate,
    ExpenseUpdate,
    ExpenseIdInput,
    ExpenseListInput,
    ExpenseReportInput,
    ExpenseResponse,
    ExpenseReport,
)
from bizdesk.services.invoice_calculator import to_cents, ZERO
from bizdesk.services.resource_guard import ScopedResourceGuard

EDITABLE_FIELDS = ("vendor", "category", "amount", "expense_date", "description", "receipt_url")


def _guard(context: ServerActionContext) -> ScopedResourceGuard[Expense]:
    return ScopedResourceGuard(ExpenseRepository(context.db), "expenses", "Expense")


def _snapshot(expense: Expense) -> dict:
    return {field: getattr(expense, field) for field in EDITABLE_FIELDS}


@workspace_action(
    "expenses.create",
    ExpenseCreate,
    required_role=WorkspaceRole.MEMBER,
    permissions=[Permission.EXPENSES_CREATE],
    audit="CREATE",
    resource_type="expense",
)
def create_expense(data: ExpenseCreate, context: ServerActionContext):
    expense = ExpenseRepository(context.db).create(
        Expense(
            workspace_id=context.workspace.id,
            created_by=context.user.id,
            **data.model_dump(include=set(EDITABLE_FIELDS)),
        )
    )
    context.record_change(new_values=_snapshot(expense))
    return success_result(ExpenseResponse.model_validate(expense), "Expense created successfully")


@workspace_action(
    "expenses.update",
    ExpenseUpdate,
    required_role=WorkspaceRole.MEMBER,
    permissions=[Permission.EXPENSES_UPDATE],
    audit="UPDATE",
    resource_type="expense",
)
def update_expense(data: ExpenseUpdate, context: ServerActionContext):
    repo = ExpenseRepository(context.db)
    expense = _guard(context).require_access(context, data.expense_id, "update")

    old_values = _snapshot(expense)
    for field in EDITABLE_FIELDS:
        value = getattr(data, field)
        if value is not None:
            setattr(expense, field, value)
    expense = repo.update(expense)

    context.record_change(old_values, _snapshot(expense))
    return success_result(ExpenseResponse.model_validate(expense), "Expense updated successfully")


@workspace_action(
    "expenses.delete",
    ExpenseIdInput,
    permissions=[Permission.EXPENSES_DELETE],
    audit="DELETE",
    resource_type="expense",
)
def delete_expense(data: ExpenseIdInput, context: ServerActionContext):
    repo = ExpenseRepository(context.db)
    expense = _guard(context).require_access(context, data.expense_id, "delete")
    context.record_change(old_values=_snapshot(expense))
    repo.delete(expense)
    return success_result(
        DeleteResponse(id=data.expense_id, message="Expense deleted successfully"),
        "Expense deleted successfully",
    )


@workspace_action("expenses.get", ExpenseIdInput, permissions=[Permission.EXPENSES_READ])
def get_expense(data: ExpenseIdInput, context: ServerActionContext):
    expense = _guard(context).require_access(context, data.expense_id, "read")
    return success_result(ExpenseResponse.model_validate(expense))


@workspace_action("expenses.list", ExpenseListInput, permissions=[Permission.EXPENSES_READ])
def list_expenses(data: ExpenseListInput, context: ServerActionContext):
    expenses, total = ExpenseRepository(context.db).list_filtered(
        context.workspace.id,
        category=data.category,
        vendor=data.vendor,
        date_from=data.date_from,
        date_to=data.date_to,
        offset=data.offset,
        limit=data.limit,
    )
    items = [ExpenseResponse.model_validate(e) for e in expenses]
    return success_result(Page[ExpenseResponse].build(items, total, data))


@workspace_action("expenses.categories", WorkspaceInput, permissions=[Permission.EXPENSES_READ])
def list_expense_categories(data: WorkspaceInput, context: ServerActionContext):
    """Default categories followed by any custom ones already in use"""
    used = ExpenseRepository(context.db).distinct_categories(context.workspace.id)
    extra = [category for category in used if category not in DEFAULT_EXPENSE_CATEGORIES]
    return success_result(DEFAULT_EXPENSE_CATEGORIES + extra)


@workspace_action("expenses.vendors", WorkspaceInput, permissions=[Permission.EXPENSES_READ])
def list_expense_vendors(data: WorkspaceInput, context: ServerActionContext):
    """Vendors already used in this workspace, alphabetical"""
    return success_result(ExpenseRepository(context.db).distinct_vendors(context.workspace.id))


@workspace_action("expenses.report", ExpenseReportInput, permissions=[Permission.REPORTS_READ])
def expense_report(data: ExpenseReportInput, context: ServerActionContext):
    """Totals by category, vendor and month (YYYY-MM) for a date range"""
    expenses = ExpenseRepository(context.db).in_range(
        context.workspace.id, data.date_from, data.date_to
    )
    by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
    by_vendor: dict[str, Decimal] = defaultdict(lambda: ZERO)
    by_month: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for expense in expenses:
        by_category[expense.category] += expense.amount
        by_vendor[expense.vendor] += expense.amount
        by_month[expense.expense_date.strftime("%Y-%m")] += expense.amount

    def rounded(totals: dict[str, Decimal]) -> dict[str, Decimal]:
        return {key: to_cents(value) for key, value in sorted(totals.items())}

    return success_result(
        ExpenseReport(
            date_from=data.date_from,
            date_to=data.date_to,
            total=to_cents(sum((e.amount for e in expenses), ZERO)),
            count=len(expenses),
            by_category=rounded(by_category),
            by_vendor=rounded(by_vendor),
            by_month=rounded(by_month),
        )
    )
