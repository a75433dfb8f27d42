from sqlalchemy import func, or_
from bizdesk.models.customer import Customer
from bizdesk.repositories.scoped_repository import WorkspaceScopedRepository


class CustomerRepository(WorkspaceScopedRepository[Customer]):
    """Repository for Customer data access"""

    model = Customer

    def find_active_by_name(
        self, workspace_id: int, name: str, exclude_id: int | None = None
    ) -> Customer | None:
        """Active customer with the same name (case-insensitive)"""
        query = self.scoped(workspace_id).filter(
            func.lower(Customer.name) == name.lower(),
            Customer.archived.is_(False),
        )
        if exclude_id is not None:
            query = query.filter(Customer.id != exclude_id)
        return query.first()

    def search(
        self,
        workspace_id: int,
        search: str | None = None,
        archived: bool | None = False,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Customer], int]:
        """
        List customers with optional text search over name, email and phone.

        Args:
            archived: False = active only, True = archived only, None = both
        """
        query = self.scoped(workspace_id)
        if archived is not None:
            query = query.filter(Customer.archived.is_(archived))
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Customer.name.ilike(pattern),
                    Customer.email.ilike(pattern),
                    Customer.phone.ilike(pattern),
                )
            )
        query = query.order_by(Customer.name, Customer.id)
        return self.paginate(query, offset, limit)

    def count_active(self, workspace_id: int) -> int:
        return self.scoped(workspace_id).filter(Customer.archived.is_(False)).count()
