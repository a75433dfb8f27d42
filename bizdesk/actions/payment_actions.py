"""
Payment actions.

A payment and the invoice balance it changes are committed together. The
invoice's version counter makes two payments that raced on the same balance
fail with concurrent_modification instead of overpaying.
"""

import logging
from decimal import Decimal

from bizdesk.actions.registry import workspace_action
from bizdesk.core.exceptions import ValidationException
from bizdesk.models.action_context import ServerActionContext
from bizdesk.models.invoice import Invoice, InvoiceStatus
from bizdesk.models.payment import Payment
from bizdesk.models.permission import Permission
from bizdesk.models.role import WorkspaceRole
from bizdesk.repositories.invoice_repository import InvoiceRepository
from bizdesk.repositories.payment_repository import PaymentRepository
from bizdesk.schemas.action_schemas import success_result
from bizdesk.schemas.common_schemas import DeleteResponse
from bizdesk.schemas.payment_schemas import (
    PaymentCreate,
    PaymentUpdate,
    PaymentIdInput,
    PaymentListInput,
    PaymentResponse,
)
from bizdesk.services import invoice_calculator
from bizdesk.services.resource_guard import ScopedResourceGuard

logger = logging.getLogger(__name__)


def _payment_guard(context: ServerActionContext) -> ScopedResourceGuard[Payment]:
    return ScopedResourceGuard(PaymentRepository(context.db), "payments", "Payment")


def _invoice_guard(context: ServerActionContext) -> ScopedResourceGuard[Invoice]:
    return ScopedResourceGuard(InvoiceRepository(context.db), "invoices", "Invoice")


def _snapshot(payment: Payment) -> dict:
    return {
        "invoice_id": payment.invoice_id,
        "amount": payment.amount,
        "payment_date": payment.payment_date,
        "payment_method": payment.payment_method,
        "reference": payment.reference,
        "notes": payment.notes,
    }


def _sync_invoice_balance(context: ServerActionContext, invoice: Invoice) -> None:
    """
    Recompute amount_paid from the staged payments and flip paid/sent.

    Raises:
        ValidationException: If payments now exceed the invoice total
    """
    context.db.flush()
    paid = PaymentRepository(context.db).total_for_invoice(context.workspace.id, invoice.id)
    if paid > invoice.total_amount:
        raise ValidationException(
            "Payments cannot exceed the invoice total",
            code="overpayment",
            field="amount",
        )
    invoice.amount_paid = invoice_calculator.to_cents(paid)
    if invoice_calculator.is_fully_paid(invoice.total_amount, paid):
        invoice.status = InvoiceStatus.PAID
    elif invoice.status == InvoiceStatus.PAID:
        invoice.status = InvoiceStatus.SENT


@workspace_action(
    "payments.record",
    PaymentCreate,
    required_role=WorkspaceRole.MEMBER,
    permissions=[Permission.PAYMENTS_CREATE],
    audit="CREATE",
    resource_type="payment",
)
def record_payment(data: PaymentCreate, context: ServerActionContext):
    """Record a payment; a payment that settles the balance marks the invoice paid"""
    invoice = _invoice_guard(context).require_access(context, data.invoice_id, "read")

    if invoice.status == InvoiceStatus.VOID:
        raise ValidationException(
            "Cannot record a payment for a void invoice",
            code="invalid_state",
            field="invoice_id",
        )
    remaining = invoice_calculator.remaining_balance(invoice.total_amount, invoice.amount_paid)
    if data.amount > remaining:
        raise ValidationException(
            f"Payment amount exceeds the remaining balance of {remaining}",
            code="overpayment",
            field="amount",
        )

    payment = Payment(
        workspace_id=context.workspace.id,
        invoice_id=invoice.id,
        amount=data.amount,
        payment_date=data.payment_date,
        payment_method=data.payment_method.value if data.payment_method else None,
        reference=data.reference,
        notes=data.notes,
        created_by=context.user.id,
    )
    PaymentRepository(context.db).add_no_commit(payment)
    _sync_invoice_balance(context, invoice)
    context.db.commit()
    context.db.refresh(payment)

    if invoice.status == InvoiceStatus.PAID:
        logger.info("Invoice %s fully paid", invoice.id)

    context.record_change(new_values=_snapshot(payment))
    return success_result(PaymentResponse.model_validate(payment), "Payment recorded successfully")


@workspace_action(
    "payments.update",
    PaymentUpdate,
    required_role=WorkspaceRole.MEMBER,
    permissions=[Permission.PAYMENTS_UPDATE],
    audit="UPDATE",
    resource_type="payment",
)
def update_payment(data: PaymentUpdate, context: ServerActionContext):
    payment = _payment_guard(context).require_access(context, data.payment_id, "update")
    invoice = payment.invoice
    if invoice.status == InvoiceStatus.VOID:
        raise ValidationException(
            "Cannot change payments of a void invoice",
            code="invalid_state",
            field="payment_id",
        )

    old_values = _snapshot(payment)
    if data.amount is not None:
        payment.amount = data.amount
    if data.payment_date is not None:
        payment.payment_date = data.payment_date
    if data.payment_method is not None:
        payment.payment_method = data.payment_method.value
    for field in ("reference", "notes"):
        value = getattr(data, field)
        if value is not None:
            setattr(payment, field, value)

    _sync_invoice_balance(context, invoice)
    context.db.commit()
    context.db.refresh(payment)

    context.record_change(old_values, _snapshot(payment))
    return success_result(PaymentResponse.model_validate(payment), "Payment updated successfully")


@workspace_action(
    "payments.delete",
    PaymentIdInput,
    permissions=[Permission.PAYMENTS_DELETE],
    audit="DELETE",
    resource_type="payment",
)
def delete_payment(data: PaymentIdInput, context: ServerActionContext):
    """Delete a payment; a paid invoice it settled goes back to sent"""
    payment = _payment_guard(context).require_access(context, data.payment_id, "delete")
    invoice = payment.invoice

    context.record_change(old_values=_snapshot(payment))
    context.db.delete(payment)
    _sync_invoice_balance(context, invoice)
    context.db.commit()

    return success_result(
        DeleteResponse(id=data.payment_id, message="Payment deleted successfully"),
        "Payment deleted successfully",
    )


@workspace_action("payments.list", PaymentListInput, permissions=[Permission.PAYMENTS_READ])
def list_payments(data: PaymentListInput, context: ServerActionContext):
    """Payments of one invoice, oldest first, with the outstanding balance"""
    invoice = _invoice_guard(context).require_access(context, data.invoice_id, "read")
    payments = PaymentRepository(context.db).list_for_invoice(context.workspace.id, invoice.id)
    return success_result(
        {
            "invoice_id": invoice.id,
            "payments": [PaymentResponse.model_validate(p) for p in payments],
            "total_paid": invoice.amount_paid,
            "balance_due": invoice_calculator.remaining_balance(
                invoice.total_amount, invoice.amount_paid
            ),
        }
    )
