"""
Permission table for workspace roles.

Permissions are ``<resource>:<action>`` values from a closed enumeration and
are mapped statically per role. This table is the single source of truth:
feature code asks it, and never builds permission strings on its own. Use
``permission_for`` when the resource/action pair is only known at runtime.
"""

from enum import Enum as PyEnum
from typing import Iterable

from bizdesk.models.role import WorkspaceRole, ROLE_HIERARCHY


class Permission(str, PyEnum):
    # Workspace management
    WORKSPACE_READ = "workspace:read"
    WORKSPACE_UPDATE = "workspace:update"
    WORKSPACE_DELETE = "workspace:delete"
    WORKSPACE_MANAGE_MEMBERS = "workspace:manage_members"
    WORKSPACE_INVITE_MEMBERS = "workspace:invite_members"
    WORKSPACE_REMOVE_MEMBERS = "workspace:remove_members"
    WORKSPACE_CHANGE_MEMBER_ROLES = "workspace:change_member_roles"

    # Customers
    CUSTOMERS_READ = "customers:read"
    CUSTOMERS_CREATE = "customers:create"
    CUSTOMERS_UPDATE = "customers:update"
    CUSTOMERS_DELETE = "customers:delete"
    CUSTOMERS_ARCHIVE = "customers:archive"

    # Invoices
    INVOICES_READ = "invoices:read"
    INVOICES_CREATE = "invoices:create"
    INVOICES_UPDATE = "invoices:update"
    INVOICES_DELETE = "invoices:delete"
    INVOICES_SEND = "invoices:send"
    INVOICES_VOID = "invoices:void"

    # Expenses
    EXPENSES_READ = "expenses:read"
    EXPENSES_CREATE = "expenses:create"
    EXPENSES_UPDATE = "expenses:update"
    EXPENSES_DELETE = "expenses:delete"

    # Tasks
    TASKS_READ = "tasks:read"
    TASKS_CREATE = "tasks:create"
    TASKS_UPDATE = "tasks:update"
    TASKS_DELETE = "tasks:delete"
    TASKS_ASSIGN = "tasks:assign"
    TASKS_COMPLETE = "tasks:complete"

    # Payments
    PAYMENTS_READ = "payments:read"
    PAYMENTS_CREATE = "payments:create"
    PAYMENTS_UPDATE = "payments:update"
    PAYMENTS_DELETE = "payments:delete"

    # Reporting
    REPORTS_READ = "reports:read"
    REPORTS_EXPORT = "reports:export"

    # Audit and system
    AUDIT_READ = "audit:read"
    SYSTEM_ADMIN = "system:admin"

    @property
    def resource(self) -> str:
        return self.value.split(":", 1)[0]

    @property
    def action(self) -> str:
        return self.value.split(":", 1)[1]


_VIEWER_PERMISSIONS = frozenset(
    {
        Permission.WORKSPACE_READ,
        Permission.CUSTOMERS_READ,
        Permission.INVOICES_READ,
        Permission.EXPENSES_READ,
        Permission.TASKS_READ,
        Permission.PAYMENTS_READ,
        Permission.REPORTS_READ,
    }
)

_MEMBER_PERMISSIONS = _VIEWER_PERMISSIONS | {
    Permission.CUSTOMERS_CREATE,
    Permission.CUSTOMERS_UPDATE,
    Permission.CUSTOMERS_ARCHIVE,
    Permission.INVOICES_CREATE,
    Permission.INVOICES_UPDATE,
    Permission.INVOICES_SEND,
    Permission.INVOICES_VOID,
    Permission.EXPENSES_CREATE,
    Permission.EXPENSES_UPDATE,
    Permission.TASKS_CREATE,
    Permission.TASKS_UPDATE,
    Permission.TASKS_ASSIGN,
    Permission.TASKS_COMPLETE,
    Permission.PAYMENTS_CREATE,
    Permission.PAYMENTS_UPDATE,
}

ROLE_PERMISSIONS: dict[WorkspaceRole, frozenset[Permission]] = {
    WorkspaceRole.ADMIN: frozenset(Permission),
    WorkspaceRole.MEMBER: frozenset(_MEMBER_PERMISSIONS),
    WorkspaceRole.VIEWER: _VIEWER_PERMISSIONS,
}

# Operations that require the admin role regardless of the table
ADMIN_ONLY_OPERATIONS = frozenset(
    {
        Permission.WORKSPACE_UPDATE,
        Permission.WORKSPACE_DELETE,
        Permission.WORKSPACE_MANAGE_MEMBERS,
        Permission.WORKSPACE_INVITE_MEMBERS,
        Permission.WORKSPACE_REMOVE_MEMBERS,
        Permission.WORKSPACE_CHANGE_MEMBER_ROLES,
        Permission.SYSTEM_ADMIN,
        Permission.AUDIT_READ,
    }
)


def permission_for(resource: str, action: str) -> Permission:
    """
    Build a permission from a runtime resource/action pair.

    Raises:
        ValueError: If the pair is not in the permission enumeration
    """
    try:
        return Permission(f"{resource}:{action}")
    except ValueError:
        raise ValueError(f"Unknown permission: {resource}:{action}") from None


def get_role_permissions(role: WorkspaceRole) -> frozenset[Permission]:
    """Static permission set for a role."""
    return ROLE_PERMISSIONS[role]


def has_permission(role: WorkspaceRole, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS[role]


def has_any_permission(role: WorkspaceRole, permissions: Iterable[Permission]) -> bool:
    return any(has_permission(role, permission) for permission in permissions)


def has_all_permissions(role: WorkspaceRole, permissions: Iterable[Permission]) -> bool:
    return all(has_permission(role, permission) for permission in permissions)


def missing_permissions(
    role: WorkspaceRole, required: Iterable[Permission]
) -> list[Permission]:
    """Required permissions the role lacks, in the order they were declared."""
    granted = ROLE_PERMISSIONS[role]
    return [permission for permission in required if permission not in granted]


def has_required_role(role: WorkspaceRole, required_role: WorkspaceRole) -> bool:
    """
    Check if a role meets or exceeds the required role.

    Role hierarchy: ADMIN (3) > MEMBER (2) > VIEWER (1)
    """
    return ROLE_HIERARCHY[role] >= ROLE_HIERARCHY[required_role]


def get_highest_role(roles: Iterable[WorkspaceRole]) -> WorkspaceRole:
    return max(roles, key=lambda role: ROLE_HIERARCHY[role])


def is_admin_only_operation(permission: Permission) -> bool:
    return permission in ADMIN_ONLY_OPERATIONS
