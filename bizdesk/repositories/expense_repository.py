from datetime import date
from decimal import Decimal
from typing import Optional
from sqlalchemy import func

from bizdesk.models.expense import Expense
from bizdesk.repositories.scoped_repository import WorkspaceScopedRepository


class ExpenseRepository(WorkspaceScopedRepository[Expense]):
    """Repository for Expense data access"""

    model = Expense

    def list_filtered(
        self,
        workspace_id: int,
        category: Optional[str] = None,
        vendor: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Expense], int]:
        """Filter expenses; most recent first. Vendor matches by substring."""
        query = self._in_range(self.scoped(workspace_id), date_from, date_to)
        if category:
            query = query.filter(Expense.category == category)
        if vendor:
            query = query.filter(Expense.vendor.ilike(f"%{vendor}%"))
        query = query.order_by(Expense.expense_date.desc(), Expense.id.desc())
        return self.paginate(query, offset, limit)

    def in_range(self, workspace_id: int, date_from: date, date_to: date) -> list[Expense]:
        return (
            self._in_range(self.scoped(workspace_id), date_from, date_to)
            .order_by(Expense.expense_date)
            .all()
        )

    def distinct_categories(self, workspace_id: int) -> list[str]:
        rows = (
            self.scoped(workspace_id)
            .with_entities(Expense.category)
            .distinct()
            .order_by(Expense.category)
            .all()
        )
        return [row[0] for row in rows]

    def distinct_vendors(self, workspace_id: int) -> list[str]:
        rows = (
            self.scoped(workspace_id)
            .with_entities(Expense.vendor)
            .distinct()
            .order_by(Expense.vendor)
            .all()
        )
        return [row[0] for row in rows]

    def total_in_range(self, workspace_id: int, date_from: date, date_to: date) -> tuple[Decimal, int]:
        """(sum of amounts, row count) for expenses dated within the range"""
        total, count = (
            self._in_range(self.scoped(workspace_id), date_from, date_to)
            .with_entities(func.coalesce(func.sum(Expense.amount), 0), func.count(Expense.id))
            .one()
        )
        return Decimal(str(total)), count

    @staticmethod
    def _in_range(query, date_from: Optional[date], date_to: Optional[date]):
        if date_from is not None:
            query = query.filter(Expense.expense_date >= date_from)
        if date_to is not None:
            query = query.filter(Expense.expense_date <= date_to)
        return query
