import pytest
from decimal import Decimal

from bizdesk.models.base import utc_now
from bizdesk.models.invoice import Invoice
from bizdesk.services.dashboard_metrics import month_bounds, percent_change, previous_month


@pytest.fixture
def new_invoice(call, workspace, member_user, customer):
    def _new(number, unit_price, issue_date="2026-01-01", due_date=None, send=True):
        payload = {
            "workspace_id": workspace.id,
            "customer_id": customer.id,
            "invoice_number": number,
            "issue_date": issue_date,
            "line_items": [{"description": "Retainer", "quantity": "1", "unit_price": unit_price}],
        }
        if due_date:
            payload["due_date"] = due_date
        created = call("invoices.create", member_user, payload)
        assert created.success, created.errors
        if send:
            sent = call(
                "invoices.update_status",
                member_user,
                {"workspace_id": workspace.id, "invoice_id": created.data.id, "status": "sent"},
            )
            assert sent.success, sent.errors
        return created.data

    return _new


@pytest.fixture
def pay(call, workspace, member_user):
    def _pay(invoice_id, amount, payment_date):
        result = call(
            "payments.record",
            member_user,
            {
                "workspace_id": workspace.id,
                "invoice_id": invoice_id,
                "amount": amount,
                "payment_date": payment_date,
            },
        )
        assert result.success, result.errors
        return result.data

    return _pay


@pytest.fixture
def spend(call, workspace, member_user):
    def _spend(amount, expense_date, vendor="Staples"):
        result = call(
            "expenses.create",
            member_user,
            {
                "workspace_id": workspace.id,
                "vendor": vendor,
                "category": "office_supplies",
                "amount": amount,
                "expense_date": expense_date,
            },
        )
        assert result.success, result.errors
        return result.data

    return _spend


def ws(workspace, **extra):
    return {"workspace_id": workspace.id, **extra}


class TestHelpers:
    def test_month_bounds(self):
        assert [d.isoformat() for d in month_bounds(2024, 2)] == ["2024-02-01", "2024-02-29"]
        assert [d.isoformat() for d in month_bounds(2026, 12)] == ["2026-12-01", "2026-12-31"]

    def test_previous_month_wraps_year(self):
        assert previous_month(2026, 1) == (2025, 12)
        assert previous_month(2026, 7) == (2026, 6)

    def test_percent_change(self):
        assert percent_change(Decimal("35"), Decimal("-20")) == Decimal("175.00")
        assert percent_change(Decimal("5"), Decimal("0")) == Decimal("0.00")


class TestOutstandingInvoices:
    def test_balances_and_overdue(self, call, workspace, viewer_user, new_invoice, pay):
        retainer = new_invoice("INV-010", "110.00")
        new_invoice("INV-011", "50.00", due_date="2026-01-31")
        new_invoice("INV-012", "10.00", send=False)
        settled = new_invoice("INV-013", "25.00")
        pay(retainer.id, "30.00", "2026-02-10")
        pay(settled.id, "25.00", "2026-02-11")

        result = call("dashboard.outstanding_invoices", viewer_user, ws(workspace))

        summary = result.data
        assert summary.total == Decimal("170.00") - Decimal("30.00")
        assert summary.count == 3
        assert summary.overdue_total == Decimal("50.00")
        assert summary.overdue_count == 1
        assert summary.draft_count == 1
        assert summary.sent_count == 2
        assert summary.billed_total == Decimal("170.00")
        assert summary.collected_percentage == Decimal("17.65")

    def test_empty_workspace(self, call, workspace, viewer_user):
        summary = call("dashboard.outstanding_invoices", viewer_user, ws(workspace)).data

        assert summary.total == Decimal("0.00")
        assert summary.count == 0
        assert summary.collected_percentage == Decimal("0.00")


class TestMonthlyFigures:
    def test_month_against_previous(self, call, workspace, viewer_user, new_invoice, pay, spend):
        invoice = new_invoice("INV-020", "200.00")
        pay(invoice.id, "20.00", "2026-01-20")
        pay(invoice.id, "30.00", "2026-02-10")
        spend("40.00", "2026-01-15")
        spend("15.00", "2026-02-05")

        result = call("dashboard.monthly_financials", viewer_user, ws(workspace, year=2026, month=2))

        report = result.data
        assert (report.current.year, report.current.month) == (2026, 2)
        assert report.current.income == Decimal("30.00")
        assert report.current.expenses == Decimal("15.00")
        assert report.current.net_income == Decimal("15.00")
        assert report.current.payment_count == 1
        assert report.current.expense_count == 1
        assert report.previous.net_income == Decimal("-20.00")
        assert report.comparison.income_change == Decimal("10.00")
        assert report.comparison.income_change_percentage == Decimal("50.00")
        assert report.comparison.expenses_change == Decimal("-25.00")
        assert report.comparison.expenses_change_percentage == Decimal("-62.50")
        assert report.comparison.net_income_change == Decimal("35.00")
        assert report.comparison.net_income_change_percentage == Decimal("175.00")

    def test_single_month_totals(self, call, workspace, viewer_user, new_invoice, pay, spend):
        invoice = new_invoice("INV-021", "100.00")
        pay(invoice.id, "12.34", "2026-03-31")
        pay(invoice.id, "1.00", "2026-04-01")
        spend("9.99", "2026-03-01")

        income = call("dashboard.monthly_income", viewer_user, ws(workspace, year=2026, month=3))
        expenses = call("dashboard.monthly_expenses", viewer_user, ws(workspace, year=2026, month=3))

        assert income.data == Decimal("12.34")
        assert expenses.data == Decimal("9.99")

    def test_january_compares_with_december(self, call, workspace, viewer_user, new_invoice, pay):
        invoice = new_invoice("INV-022", "100.00", issue_date="2025-12-01")
        pay(invoice.id, "20.00", "2025-12-15")

        report = call("dashboard.monthly_financials", viewer_user, ws(workspace, year=2026, month=1)).data

        assert (report.previous.year, report.previous.month) == (2025, 12)
        assert report.previous.income == Decimal("20.00")
        assert report.current.income == Decimal("0.00")
        assert report.comparison.income_change_percentage == Decimal("-100.00")

    def test_month_out_of_range(self, call, workspace, viewer_user):
        result = call("dashboard.monthly_income", viewer_user, ws(workspace, year=2026, month=13))

        assert result.message == "Validation failed"
        assert result.errors[0].field == "month"


class TestCounts:
    def test_active_customers_only(self, call, workspace, other_workspace, member_user, viewer_user, outsider_user, customer):
        archived = call("customers.create", member_user, ws(workspace, name="Umbrella")).data
        call("customers.archive", member_user, ws(workspace, customer_id=archived.id))
        call("customers.create", outsider_user, {"workspace_id": other_workspace.id, "name": "Globex"})

        result = call("dashboard.total_customers", viewer_user, ws(workspace))

        assert result.data == 1

    def test_pending_tasks(self, call, workspace, member_user, viewer_user):
        call("tasks.create", member_user, ws(workspace, title="Order toner"))
        done = call("tasks.create", member_user, ws(workspace, title="Renew domain")).data
        started = call("tasks.create", member_user, ws(workspace, title="Call the landlord")).data
        call("tasks.complete", member_user, ws(workspace, task_id=done.id))
        call("tasks.update", member_user, ws(workspace, task_id=started.id, status="in_progress"))

        result = call("dashboard.pending_tasks", viewer_user, ws(workspace))

        assert result.data == 2


class TestDashboardMetrics:
    def test_current_month_summary(self, call, workspace, viewer_user, new_invoice, pay):
        today = utc_now().date().isoformat()
        invoice = new_invoice("INV-030", "80.00", issue_date=today)
        pay(invoice.id, "30.00", today)

        result = call("dashboard.metrics", viewer_user, ws(workspace))

        metrics = result.data
        assert metrics.outstanding_invoices.total == Decimal("50.00")
        assert metrics.outstanding_invoices.count == 1
        assert metrics.monthly_income.current == Decimal("30.00")
        assert metrics.monthly_income.previous == Decimal("0.00")
        assert metrics.monthly_expenses.current == Decimal("0.00")
        assert metrics.total_customers == 1
        assert metrics.pending_tasks == 0

    def test_outsider_cannot_read(self, call, workspace, outsider_user):
        result = call("dashboard.metrics", outsider_user, ws(workspace))

        assert result.error_codes == ["workspace_not_found"]


class TestValidateFinancials:
    def test_consistent_workspace(self, call, workspace, viewer_user, invoice, new_invoice, pay):
        paid_off = new_invoice("INV-040", "25.00")
        pay(paid_off.id, "25.00", "2026-02-01")

        result = call("dashboard.validate_financials", viewer_user, ws(workspace))

        assert result.message == "Financial figures are consistent"
        assert result.data.is_accurate is True
        assert result.data.invoices_checked == 2
        assert result.data.discrepancies == []

    def test_reports_stored_figures_that_disagree(self, call, db_session, workspace, viewer_user, invoice):
        db_session.query(Invoice).filter_by(id=invoice.id).update(
            {"total_amount": Decimal("1.00"), "amount_paid": Decimal("5.00")}
        )
        db_session.commit()

        result = call("dashboard.validate_financials", viewer_user, ws(workspace))

        assert result.message == "Discrepancies found"
        assert result.data.is_accurate is False
        assert result.data.discrepancies == [
            "Invoice INV-001: total 1.00 should be 110.00",
            "Invoice INV-001: amount paid 5.00 does not match recorded payments 0.00",
        ]
