"""Customer actions."""

from bizdesk.actions.registry import workspace_action
from bizdesk.core.exceptions import ValidationException
from bizdesk.models.action_context import ServerActionContext
from bizdesk.models.base import utc_now
from bizdesk.models.customer import Customer
from bizdesk.models.invoice import Invoice
from bizdesk.models.permission import Permission
from bizdesk.models.role import WorkspaceRole
from bizdesk.repositories.customer_repository import CustomerRepository
from bizdesk.schemas.action_schemas import success_result
from bizdesk.schemas.common_schemas import Page, DeleteResponse
from bizdesk.schemas.customer_schemas import (
    CustomerCreate,
    CustomerUpdate,
    CustomerArchive,
    CustomerIdInput,
    CustomerListInput,
    CustomerResponse,
)
from bizdesk.services.resource_guard import ScopedResourceGuard

EDITABLE_FIELDS = ("name", "email", "phone", "address")


def _guard(context: ServerActionContext) -> ScopedResourceGuard[Customer]:
    return ScopedResourceGuard(CustomerRepository(context.db), "customers", "Customer")


def _snapshot(customer: Customer) -> dict:
    return {field: getattr(customer, field) for field in EDITABLE_FIELDS + ("archived",)}


def _ensure_unique_name(
    repo: CustomerRepository, workspace_id: int, name: str, exclude_id: int | None = None
) -> None:
    if repo.find_active_by_name(workspace_id, name, exclude_id=exclude_id):
        raise ValidationException(
            "A customer with this name already exists in your workspace",
            code="duplicate_name",
            field="name",
        )


@workspace_action(
    "customers.create",
    CustomerCreate,
    required_role=WorkspaceRole.MEMBER,
    permissions=[Permission.CUSTOMERS_CREATE],
    audit="CREATE",
    resource_type="customer",
)
def create_customer(data: CustomerCreate, context: ServerActionContext):
    repo = CustomerRepository(context.db)
    _ensure_unique_name(repo, context.workspace.id, data.name)

    customer = repo.create(
        Customer(
            workspace_id=context.workspace.id,
            name=data.name,
            email=data.email,
            phone=data.phone,
            address=data.address,
            created_by=context.user.id,
        )
    )
    context.record_change(new_values=_snapshot(customer))
    return success_result(CustomerResponse.model_validate(customer), "Customer created successfully")


@workspace_action(
    "customers.update",
    CustomerUpdate,
    required_role=WorkspaceRole.MEMBER,
    permissions=[Permission.CUSTOMERS_UPDATE],
    audit="UPDATE",
    resource_type="customer",
)
def update_customer(data: CustomerUpdate, context: ServerActionContext):
    repo = CustomerRepository(context.db)
    customer = _guard(context).require_access(context, data.customer_id, "update")

    if data.name is not None and data.name != customer.name:
        _ensure_unique_name(repo, context.workspace.id, data.name, exclude_id=customer.id)

    old_values = _snapshot(customer)
    for field in EDITABLE_FIELDS:
        value = getattr(data, field)
        if value is not None:
            setattr(customer, field, value)

    customer = repo.update(customer)
    context.record_change(old_values, _snapshot(customer))
    return success_result(CustomerResponse.model_validate(customer), "Customer updated successfully")


@workspace_action(
    "customers.archive",
    CustomerArchive,
    required_role=WorkspaceRole.MEMBER,
    permissions=[Permission.CUSTOMERS_ARCHIVE],
    audit="ARCHIVE",
    resource_type="customer",
)
def archive_customer(data: CustomerArchive, context: ServerActionContext):
    """Soft delete or restore; restoring checks the name is still free"""
    repo = CustomerRepository(context.db)
    customer = _guard(context).require_access(context, data.customer_id, "archive")

    if customer.archived == data.archived:
        raise ValidationException(
            "Customer is already archived" if data.archived else "Customer is already active",
            code="invalid_state",
            field="archived",
        )
    if not data.archived:
        _ensure_unique_name(repo, context.workspace.id, customer.name, exclude_id=customer.id)

    customer.archived = data.archived
    customer.archived_at = utc_now() if data.archived else None
    customer.archived_by = context.user.id if data.archived else None
    customer = repo.update(customer)

    message = "Customer archived successfully" if data.archived else "Customer restored successfully"
    return success_result(CustomerResponse.model_validate(customer), message)


@workspace_action(
    "customers.delete",
    CustomerIdInput,
    permissions=[Permission.CUSTOMERS_DELETE],
    audit="DELETE",
    resource_type="customer",
)
def delete_customer(data: CustomerIdInput, context: ServerActionContext):
    """Permanent delete; customers with invoices must be archived instead"""
    repo = CustomerRepository(context.db)
    customer = _guard(context).require_access(context, data.customer_id, "delete")

    has_invoices = (
        context.db.query(Invoice.id)
        .filter(Invoice.workspace_id == context.workspace.id, Invoice.customer_id == customer.id)
        .first()
    )
    if has_invoices:
        raise ValidationException(
            "Cannot delete customer with existing invoices. Archive the customer instead.",
            code="has_dependents",
            field="customer_id",
        )

    context.record_change(old_values=_snapshot(customer))
    repo.delete(customer)
    return success_result(
        DeleteResponse(id=data.customer_id, message="Customer deleted successfully"),
        "Customer deleted successfully",
    )


@workspace_action("customers.get", CustomerIdInput, permissions=[Permission.CUSTOMERS_READ])
def get_customer(data: CustomerIdInput, context: ServerActionContext):
    customer = _guard(context).require_access(context, data.customer_id, "read")
    return success_result(CustomerResponse.model_validate(customer))


@workspace_action("customers.list", CustomerListInput, permissions=[Permission.CUSTOMERS_READ])
def list_customers(data: CustomerListInput, context: ServerActionContext):
    customers, total = CustomerRepository(context.db).search(
        context.workspace.id,
        search=data.search,
        archived=data.archived,
        offset=data.offset,
        limit=data.limit,
    )
    items = [CustomerResponse.model_validate(c) for c in customers]
    return success_result(Page[CustomerResponse].build(items, total, data))
