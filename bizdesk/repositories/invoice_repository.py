from datetime import date
from typing import Optional

from bizdesk.models.invoice import Invoice, InvoiceStatus, InvoiceLineItem
from bizdesk.repositories.scoped_repository import WorkspaceScopedRepository


class InvoiceRepository(WorkspaceScopedRepository[Invoice]):
    """Repository for Invoice data access (line items travel with the header)"""

    model = Invoice

    def number_taken(
        self, workspace_id: int, invoice_number: str, exclude_id: Optional[int] = None
    ) -> bool:
        query = self.scoped(workspace_id).filter(Invoice.invoice_number == invoice_number)
        if exclude_id is not None:
            query = query.filter(Invoice.id != exclude_id)
        return query.first() is not None

    def get_line_item(self, invoice: Invoice, line_item_id: int) -> Optional[InvoiceLineItem]:
        """Line item only if it belongs to this invoice"""
        for item in invoice.line_items:
            if item.id == line_item_id:
                return item
        return None

    def list_filtered(
        self,
        workspace_id: int,
        status: Optional[InvoiceStatus] = None,
        customer_id: Optional[int] = None,
        issue_date_from: Optional[date] = None,
        issue_date_to: Optional[date] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Invoice], int]:
        """
        Filter invoices; newest issue date first.

        Args:
            search: Substring of the invoice number
        """
        query = self.scoped(workspace_id)
        if status is not None:
            query = query.filter(Invoice.status == status)
        if customer_id is not None:
            query = query.filter(Invoice.customer_id == customer_id)
        if issue_date_from is not None:
            query = query.filter(Invoice.issue_date >= issue_date_from)
        if issue_date_to is not None:
            query = query.filter(Invoice.issue_date <= issue_date_to)
        if search:
            query = query.filter(Invoice.invoice_number.ilike(f"%{search}%"))
        query = query.order_by(Invoice.issue_date.desc(), Invoice.id.desc())
        return self.paginate(query, offset, limit)

    def open_invoices(self, workspace_id: int) -> list[Invoice]:
        """Draft and sent invoices, oldest issue date first"""
        return (
            self.scoped(workspace_id)
            .filter(Invoice.status.in_((InvoiceStatus.DRAFT, InvoiceStatus.SENT)))
            .order_by(Invoice.issue_date, Invoice.id)
            .all()
        )

    def list_all(self, workspace_id: int) -> list[Invoice]:
        return self.scoped(workspace_id).order_by(Invoice.id).all()
