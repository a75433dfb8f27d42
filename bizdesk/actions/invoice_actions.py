"""
Invoice actions.

Header and line items are always written in one transaction; totals are
recomputed by the invoice calculator whenever a line changes. Paid and void
invoices are locked.
"""

from bizdesk.actions.registry import workspace_action
from bizdesk.core.exceptions import (
    NotFoundException,
    ResourceAccessDeniedException,
    ValidationException,
)
from bizdesk.models.action_context import ServerActionContext
from bizdesk.models.customer import Customer
from bizdesk.models.invoice import (
    Invoice,
    InvoiceLineItem,
    InvoiceStatus,
    INVOICE_STATUS_TRANSITIONS,
)
from bizdesk.models.permission import Permission
from bizdesk.models.role import WorkspaceRole
from bizdesk.repositories.customer_repository import CustomerRepository
from bizdesk.repositories.invoice_repository import InvoiceRepository
from bizdesk.repositories.payment_repository import PaymentRepository
from bizdesk.schemas.action_schemas import success_result
from bizdesk.schemas.common_schemas import Page, DeleteResponse
from bizdesk.schemas.invoice_schemas import (
    LineItemInput,
    InvoiceCreate,
    InvoiceUpdate,
    InvoiceStatusUpdate,
    InvoiceIdInput,
    LineItemAdd,
    LineItemUpdate,
    LineItemRemove,
    InvoiceListInput,
    InvoiceResponse,
    InvoiceSummaryResponse,
    InvoiceTotalsInput,
    InvoiceTotalsResponse,
)
from bizdesk.services import invoice_calculator
from bizdesk.services.resource_guard import ScopedResourceGuard

# Permission needed to move an invoice INTO each status
STATUS_PERMISSIONS = {
    InvoiceStatus.SENT: Permission.INVOICES_SEND,
    InvoiceStatus.VOID: Permission.INVOICES_VOID,
    InvoiceStatus.PAID: Permission.INVOICES_UPDATE,
    InvoiceStatus.DRAFT: Permission.INVOICES_UPDATE,
}

MUTATION_OPTIONS = dict(required_role=WorkspaceRole.MEMBER, resource_type="invoice")


def _guard(context: ServerActionContext) -> ScopedResourceGuard[Invoice]:
    return ScopedResourceGuard(InvoiceRepository(context.db), "invoices", "Invoice")


def _snapshot(invoice: Invoice) -> dict:
    return {
        "invoice_number": invoice.invoice_number,
        "customer_id": invoice.customer_id,
        "status": invoice.status.value,
        "issue_date": invoice.issue_date,
        "due_date": invoice.due_date,
        "tax_rate": invoice.tax_rate,
        "subtotal": invoice.subtotal,
        "tax_amount": invoice.tax_amount,
        "total_amount": invoice.total_amount,
        "amount_paid": invoice.amount_paid,
        "notes": invoice.notes,
        "line_item_count": len(invoice.line_items),
    }


def _require_unlocked(invoice: Invoice) -> None:
    if invoice.is_locked:
        raise ValidationException(
            f"Cannot edit a {invoice.status.value} invoice",
            code="invoice_locked",
            field="status",
        )


def _require_active_customer(context: ServerActionContext, customer_id: int) -> Customer:
    customer = CustomerRepository(context.db).get_by_id_and_workspace(
        customer_id, context.workspace.id
    )
    if customer is None:
        raise NotFoundException("Customer not found", field="customer_id")
    if customer.archived:
        raise ValidationException(
            "Cannot invoice an archived customer",
            code="invalid_state",
            field="customer_id",
        )
    return customer


def _ensure_unique_number(
    repo: InvoiceRepository, workspace_id: int, number: str, exclude_id: int | None = None
) -> None:
    if repo.number_taken(workspace_id, number, exclude_id=exclude_id):
        raise ValidationException(
            f"Invoice number {number} already exists in this workspace",
            code="duplicate_invoice_number",
            field="invoice_number",
        )


def _build_line_items(items: list[LineItemInput]) -> list[InvoiceLineItem]:
    return [
        InvoiceLineItem(
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total=invoice_calculator.line_item_total(item.quantity, item.unit_price),
            sort_order=position,
        )
        for position, item in enumerate(items)
    ]


def _apply_totals(invoice: Invoice) -> None:
    """Recompute every line total and the header totals in place"""
    for position, item in enumerate(invoice.line_items):
        item.total = invoice_calculator.line_item_total(item.quantity, item.unit_price)
        item.sort_order = position
    totals = invoice_calculator.calculate_totals(invoice.line_items, invoice.tax_rate)
    invoice.subtotal = totals.subtotal
    invoice.tax_amount = totals.tax_amount
    invoice.total_amount = totals.total_amount


def _commit(context: ServerActionContext, invoice: Invoice) -> Invoice:
    context.db.commit()
    context.db.refresh(invoice)
    return invoice


@workspace_action(
    "invoices.create",
    InvoiceCreate,
    permissions=[Permission.INVOICES_CREATE],
    audit="CREATE",
    **MUTATION_OPTIONS,
)
def create_invoice(data: InvoiceCreate, context: ServerActionContext):
    """Draft invoice plus line items, committed atomically"""
    repo = InvoiceRepository(context.db)
    _require_active_customer(context, data.customer_id)
    _ensure_unique_number(repo, context.workspace.id, data.invoice_number)

    invoice = Invoice(
        workspace_id=context.workspace.id,
        customer_id=data.customer_id,
        invoice_number=data.invoice_number,
        status=InvoiceStatus.DRAFT,
        issue_date=data.issue_date,
        due_date=data.due_date,
        tax_rate=data.tax_rate,
        notes=data.notes,
        created_by=context.user.id,
        line_items=_build_line_items(data.line_items),
    )
    _apply_totals(invoice)
    repo.add_no_commit(invoice)
    invoice = _commit(context, invoice)

    context.record_change(new_values=_snapshot(invoice))
    return success_result(InvoiceResponse.model_validate(invoice), "Invoice created successfully")


@workspace_action(
    "invoices.update",
    InvoiceUpdate,
    permissions=[Permission.INVOICES_UPDATE],
    audit="UPDATE",
    **MUTATION_OPTIONS,
)
def update_invoice(data: InvoiceUpdate, context: ServerActionContext):
    repo = InvoiceRepository(context.db)
    invoice = _guard(context).require_access(context, data.invoice_id, "update")
    _require_unlocked(invoice)
    old_values = _snapshot(invoice)

    if data.customer_id is not None and data.customer_id != invoice.customer_id:
        _require_active_customer(context, data.customer_id)
        invoice.customer_id = data.customer_id
    if data.invoice_number is not None and data.invoice_number != invoice.invoice_number:
        _ensure_unique_number(repo, context.workspace.id, data.invoice_number, exclude_id=invoice.id)
        invoice.invoice_number = data.invoice_number
    for field in ("issue_date", "due_date", "tax_rate", "notes"):
        value = getattr(data, field)
        if value is not None:
            setattr(invoice, field, value)

    if invoice.due_date is not None and invoice.due_date < invoice.issue_date:
        raise ValidationException(
            "Due date cannot be before the issue date", field="due_date"
        )

    if data.line_items is not None:
        invoice.line_items = _build_line_items(data.line_items)
    _apply_totals(invoice)
    invoice = _commit(context, invoice)

    context.record_change(old_values, _snapshot(invoice))
    return success_result(InvoiceResponse.model_validate(invoice), "Invoice updated successfully")


@workspace_action(
    "invoices.update_status",
    InvoiceStatusUpdate,
    audit="UPDATE",
    **MUTATION_OPTIONS,
)
def update_invoice_status(data: InvoiceStatusUpdate, context: ServerActionContext):
    """
    Move an invoice through draft -> sent -> paid, or to void.

    Sending needs invoices:send and voiding invoices:void.
    """
    invoice = _guard(context).require_access(context, data.invoice_id, "read")

    permission = STATUS_PERMISSIONS[data.status]
    if not context.has_permission(permission):
        raise ResourceAccessDeniedException(
            f"Your role cannot move invoices to {data.status.value} (requires {permission.value})"
        )

    if data.status not in INVOICE_STATUS_TRANSITIONS[invoice.status]:
        raise ValidationException(
            f"Cannot change invoice status from {invoice.status.value} to {data.status.value}",
            code="invalid_status_transition",
            field="status",
        )

    old_values = _snapshot(invoice)
    invoice.status = data.status
    invoice = _commit(context, invoice)

    context.record_change(old_values, _snapshot(invoice))
    return success_result(
        InvoiceResponse.model_validate(invoice), f"Invoice marked as {data.status.value}"
    )


@workspace_action(
    "invoices.add_line_item",
    LineItemAdd,
    permissions=[Permission.INVOICES_UPDATE],
    audit="UPDATE",
    **MUTATION_OPTIONS,
)
def add_line_item(data: LineItemAdd, context: ServerActionContext):
    invoice = _guard(context).require_access(context, data.invoice_id, "update")
    _require_unlocked(invoice)
    old_values = _snapshot(invoice)

    invoice.line_items.extend(_build_line_items([data]))
    _apply_totals(invoice)
    invoice = _commit(context, invoice)

    context.record_change(old_values, _snapshot(invoice))
    return success_result(InvoiceResponse.model_validate(invoice), "Line item added")


@workspace_action(
    "invoices.update_line_item",
    LineItemUpdate,
    permissions=[Permission.INVOICES_UPDATE],
    audit="UPDATE",
    **MUTATION_OPTIONS,
)
def update_line_item(data: LineItemUpdate, context: ServerActionContext):
    repo = InvoiceRepository(context.db)
    invoice = _guard(context).require_access(context, data.invoice_id, "update")
    _require_unlocked(invoice)

    item = repo.get_line_item(invoice, data.line_item_id)
    if item is None:
        raise NotFoundException("Line item not found", field="line_item_id")

    old_values = _snapshot(invoice)
    for field in ("description", "quantity", "unit_price"):
        value = getattr(data, field)
        if value is not None:
            setattr(item, field, value)
    _apply_totals(invoice)
    invoice = _commit(context, invoice)

    context.record_change(old_values, _snapshot(invoice))
    return success_result(InvoiceResponse.model_validate(invoice), "Line item updated")


@workspace_action(
    "invoices.remove_line_item",
    LineItemRemove,
    permissions=[Permission.INVOICES_UPDATE],
    audit="UPDATE",
    **MUTATION_OPTIONS,
)
def remove_line_item(data: LineItemRemove, context: ServerActionContext):
    repo = InvoiceRepository(context.db)
    invoice = _guard(context).require_access(context, data.invoice_id, "update")
    _require_unlocked(invoice)

    item = repo.get_line_item(invoice, data.line_item_id)
    if item is None:
        raise NotFoundException("Line item not found", field="line_item_id")
    if len(invoice.line_items) == 1:
        raise ValidationException(
            "An invoice must keep at least one line item",
            code="last_line_item",
            field="line_item_id",
        )

    old_values = _snapshot(invoice)
    invoice.line_items.remove(item)
    _apply_totals(invoice)
    invoice = _commit(context, invoice)

    context.record_change(old_values, _snapshot(invoice))
    return success_result(InvoiceResponse.model_validate(invoice), "Line item removed")


@workspace_action(
    "invoices.recalculate",
    InvoiceIdInput,
    permissions=[Permission.INVOICES_UPDATE],
    audit="UPDATE",
    **MUTATION_OPTIONS,
)
def recalculate_invoice(data: InvoiceIdInput, context: ServerActionContext):
    invoice = _guard(context).require_access(context, data.invoice_id, "update")
    _require_unlocked(invoice)
    old_values = _snapshot(invoice)

    _apply_totals(invoice)
    invoice = _commit(context, invoice)

    context.record_change(old_values, _snapshot(invoice))
    return success_result(InvoiceResponse.model_validate(invoice), "Invoice totals recalculated")


@workspace_action(
    "invoices.delete",
    InvoiceIdInput,
    permissions=[Permission.INVOICES_DELETE],
    audit="DELETE",
    resource_type="invoice",
)
def delete_invoice(data: InvoiceIdInput, context: ServerActionContext):
    """Delete an unpaid invoice that has no payments (line items go with it)"""
    repo = InvoiceRepository(context.db)
    invoice = _guard(context).require_access(context, data.invoice_id, "delete")

    if invoice.status == InvoiceStatus.PAID:
        raise ValidationException(
            "Cannot delete a paid invoice", code="invoice_locked", field="status"
        )
    if PaymentRepository(context.db).count_for_invoice(context.workspace.id, invoice.id):
        raise ValidationException(
            "Cannot delete an invoice with recorded payments",
            code="has_dependents",
            field="invoice_id",
        )

    context.record_change(old_values=_snapshot(invoice))
    repo.delete(invoice)
    return success_result(
        DeleteResponse(id=data.invoice_id, message="Invoice deleted successfully"),
        "Invoice deleted successfully",
    )


@workspace_action("invoices.calculate_totals", InvoiceTotalsInput, permissions=[Permission.INVOICES_READ])
def calculate_invoice_totals(data: InvoiceTotalsInput, context: ServerActionContext):
    """Price a draft in the invoice form; nothing is written"""
    totals = invoice_calculator.calculate_totals(data.line_items, data.tax_rate)
    return success_result(
        InvoiceTotalsResponse(
            line_totals=[
                invoice_calculator.line_item_total(item.quantity, item.unit_price)
                for item in data.line_items
            ],
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total_amount=totals.total_amount,
        )
    )


@workspace_action("invoices.get", InvoiceIdInput, permissions=[Permission.INVOICES_READ])
def get_invoice(data: InvoiceIdInput, context: ServerActionContext):
    invoice = _guard(context).require_access(context, data.invoice_id, "read")
    return success_result(InvoiceResponse.model_validate(invoice))


@workspace_action("invoices.list", InvoiceListInput, permissions=[Permission.INVOICES_READ])
def list_invoices(data: InvoiceListInput, context: ServerActionContext):
    invoices, total = InvoiceRepository(context.db).list_filtered(
        context.workspace.id,
        status=data.status,
        customer_id=data.customer_id,
        issue_date_from=data.issue_date_from,
        issue_date_to=data.issue_date_to,
        search=data.search,
        offset=data.offset,
        limit=data.limit,
    )
    items = [InvoiceSummaryResponse.model_validate(i) for i in invoices]
    return success_result(Page[InvoiceSummaryResponse].build(items, total, data))
