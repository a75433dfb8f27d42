from datetime import date
from decimal import Decimal
from sqlalchemy import func

from bizdesk.models.payment import Payment
from bizdesk.repositories.scoped_repository import WorkspaceScopedRepository


class PaymentRepository(WorkspaceScopedRepository[Payment]):
    """Repository for Payment data access"""

    model = Payment

    def list_for_invoice(self, workspace_id: int, invoice_id: int) -> list[Payment]:
        return (
            self.scoped(workspace_id)
            .filter(Payment.invoice_id == invoice_id)
            .order_by(Payment.payment_date, Payment.id)
            .all()
        )

    def total_for_invoice(self, workspace_id: int, invoice_id: int) -> Decimal:
        total = (
            self.scoped(workspace_id)
            .filter(Payment.invoice_id == invoice_id)
            .with_entities(func.coalesce(func.sum(Payment.amount), 0))
            .scalar()
        )
        return Decimal(str(total))

    def count_for_invoice(self, workspace_id: int, invoice_id: int) -> int:
        return self.scoped(workspace_id).filter(Payment.invoice_id == invoice_id).count()

    def total_in_range(self, workspace_id: int, date_from: date, date_to: date) -> tuple[Decimal, int]:
        """(sum of amounts, row count) for payments received within the range"""
        total, count = (
            self.scoped(workspace_id)
            .filter(Payment.payment_date >= date_from, Payment.payment_date <= date_to)
            .with_entities(func.coalesce(func.sum(Payment.amount), 0), func.count(Payment.id))
            .one()
        )
        return Decimal(str(total)), count
