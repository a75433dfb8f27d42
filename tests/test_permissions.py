import pytest
from itertools import product

from bizdesk.models.permission import (
    Permission,
    ROLE_PERMISSIONS,
    get_role_permissions,
    has_permission,
    has_any_permission,
    has_all_permissions,
    has_required_role,
    missing_permissions,
    get_highest_role,
    is_admin_only_operation,
    permission_for,
)
from bizdesk.models.role import WorkspaceRole, ROLE_HIERARCHY


ROLES = list(WorkspaceRole)


class TestRoleOrdering:
    """Role hierarchy comparisons"""

    @pytest.mark.parametrize("role, required", list(product(ROLES, ROLES)))
    def test_has_required_role_matches_rank(self, role, required):
        assert has_required_role(role, required) == (ROLE_HIERARCHY[role] >= ROLE_HIERARCHY[required])

    def test_member_is_not_admin(self):
        assert has_required_role(WorkspaceRole.MEMBER, WorkspaceRole.ADMIN) is False

    def test_admin_covers_viewer(self):
        assert has_required_role(WorkspaceRole.ADMIN, WorkspaceRole.VIEWER) is True

    def test_rank_property(self):
        assert WorkspaceRole.VIEWER.rank < WorkspaceRole.MEMBER.rank < WorkspaceRole.ADMIN.rank

    def test_highest_role(self):
        roles = [WorkspaceRole.VIEWER, WorkspaceRole.ADMIN, WorkspaceRole.MEMBER]
        assert get_highest_role(roles) == WorkspaceRole.ADMIN


class TestRolePermissions:
    """Static role -> permission table"""

    def test_permission_sets_are_nested(self):
        viewer = get_role_permissions(WorkspaceRole.VIEWER)
        member = get_role_permissions(WorkspaceRole.MEMBER)
        admin = get_role_permissions(WorkspaceRole.ADMIN)

        assert viewer <= member <= admin

    @pytest.mark.parametrize("role", ROLES)
    def test_every_role_reads_business_data(self, role):
        for permission in (
            Permission.CUSTOMERS_READ,
            Permission.INVOICES_READ,
            Permission.EXPENSES_READ,
            Permission.TASKS_READ,
            Permission.PAYMENTS_READ,
        ):
            assert has_permission(role, permission)

    def test_admin_has_every_permission(self):
        assert ROLE_PERMISSIONS[WorkspaceRole.ADMIN] == frozenset(Permission)

    def test_viewer_cannot_write(self):
        assert not has_permission(WorkspaceRole.VIEWER, Permission.CUSTOMERS_CREATE)
        assert not has_permission(WorkspaceRole.VIEWER, Permission.TASKS_UPDATE)

    def test_member_cannot_delete_or_manage(self):
        for permission in (
            Permission.CUSTOMERS_DELETE,
            Permission.INVOICES_DELETE,
            Permission.TASKS_DELETE,
            Permission.WORKSPACE_INVITE_MEMBERS,
            Permission.AUDIT_READ,
        ):
            assert not has_permission(WorkspaceRole.MEMBER, permission)

    def test_any_and_all(self):
        mixed = [Permission.TASKS_READ, Permission.TASKS_DELETE]

        assert has_any_permission(WorkspaceRole.MEMBER, mixed)
        assert not has_all_permissions(WorkspaceRole.MEMBER, mixed)
        assert has_all_permissions(WorkspaceRole.ADMIN, mixed)

    def test_missing_permissions_keeps_declared_order(self):
        required = [Permission.TASKS_DELETE, Permission.TASKS_READ, Permission.AUDIT_READ]

        assert missing_permissions(WorkspaceRole.MEMBER, required) == [
            Permission.TASKS_DELETE,
            Permission.AUDIT_READ,
        ]

    def test_admin_only_operations(self):
        assert is_admin_only_operation(Permission.WORKSPACE_CHANGE_MEMBER_ROLES)
        assert not is_admin_only_operation(Permission.CUSTOMERS_CREATE)


class TestPermissionLookup:
    def test_permission_for_known_pair(self):
        permission = permission_for("invoices", "send")

        assert permission is Permission.INVOICES_SEND
        assert permission.resource == "invoices"
        assert permission.action == "send"

    def test_permission_for_unknown_pair(self):
        with pytest.raises(ValueError, match="Unknown permission"):
            permission_for("invoices", "teleport")
