"""Dashboard figures; every workspace member (viewer and up) may read them."""

from bizdesk.actions.registry import workspace_action
from bizdesk.models.action_context import ServerActionContext
from bizdesk.models.permission import Permission
from bizdesk.schemas.action_schemas import success_result
from bizdesk.schemas.common_schemas import WorkspaceInput
from bizdesk.schemas.dashboard_schemas import MonthInput
from bizdesk.services.dashboard_metrics import DashboardMetricsService

READ_REPORTS = dict(permissions=[Permission.REPORTS_READ])


def _metrics(context: ServerActionContext) -> DashboardMetricsService:
    return DashboardMetricsService(context.db)


@workspace_action("dashboard.metrics", WorkspaceInput, **READ_REPORTS)
def get_dashboard_metrics(data: WorkspaceInput, context: ServerActionContext):
    """Outstanding invoices, this month against last, customers and open tasks"""
    return success_result(_metrics(context).dashboard_metrics(context.workspace.id))


@workspace_action("dashboard.outstanding_invoices", WorkspaceInput, **READ_REPORTS)
def get_outstanding_invoices(data: WorkspaceInput, context: ServerActionContext):
    return success_result(_metrics(context).outstanding_invoices(context.workspace.id))


@workspace_action("dashboard.monthly_income", MonthInput, **READ_REPORTS)
def get_monthly_income(data: MonthInput, context: ServerActionContext):
    return success_result(
        _metrics(context).monthly_income(context.workspace.id, data.year, data.month)
    )


@workspace_action("dashboard.monthly_expenses", MonthInput, **READ_REPORTS)
def get_monthly_expenses(data: MonthInput, context: ServerActionContext):
    return success_result(
        _metrics(context).monthly_expenses(context.workspace.id, data.year, data.month)
    )


@workspace_action("dashboard.monthly_financials", MonthInput, **READ_REPORTS)
def get_monthly_financials(data: MonthInput, context: ServerActionContext):
    return success_result(
        _metrics(context).monthly_financials(context.workspace.id, data.year, data.month)
    )


@workspace_action("dashboard.total_customers", WorkspaceInput, **READ_REPORTS)
def get_total_customers(data: WorkspaceInput, context: ServerActionContext):
    return success_result(_metrics(context).total_customers(context.workspace.id))


@workspace_action("dashboard.pending_tasks", WorkspaceInput, **READ_REPORTS)
def get_pending_tasks(data: WorkspaceInput, context: ServerActionContext):
    return success_result(_metrics(context).pending_tasks(context.workspace.id))


@workspace_action("dashboard.validate_financials", WorkspaceInput, **READ_REPORTS)
def validate_financial_accuracy(data: WorkspaceInput, context: ServerActionContext):
    """Check stored invoice totals and paid amounts against line items and payments"""
    report = _metrics(context).validate_financial_accuracy(context.workspace.id)
    message = "Financial figures are consistent" if report.is_accurate else "Discrepancies found"
    return success_result(report, message)
