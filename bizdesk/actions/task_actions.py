"""Task actions."""

from bizdesk.actions.registry import workspace_action
from bizdesk.core.exceptions import ResourceAccessDeniedException, ValidationException
from bizdesk.models.action_context import ServerActionContext
from bizdesk.models.base import utc_now
from bizdesk.models.permission import Permission, permission_for
from bizdesk.models.role import WorkspaceRole
from bizdesk.models.task import Task, TaskStatus
from bizdesk.repositories.task_repository import TaskRepository
from bizdesk.repositories.workspace_membership_repository import WorkspaceMembershipRepository
from bizdesk.schemas.action_schemas import success_result
from bizdesk.schemas.common_schemas import Page, DeleteResponse
from bizdesk.schemas.task_schemas import (
    TaskCreate,
    TaskUpdate,
    TaskAssign,
    TaskIdInput,
    TaskListInput,
    TaskResponse,
    TaskBulkInput,
    TaskBulkItemResult,
    TaskBulkResult,
    BulkTaskOperation,
)
from bizdesk.services.resource_guard import ScopedResourceGuard


def _guard(context: ServerActionContext) -> ScopedResourceGuard[Task]:
    return ScopedResourceGuard(TaskRepository(context.db), "tasks", "Task")


def _snapshot(task: Task) -> dict:
    return {
        "title": task.title,
        "description": task.description,
        "assigned_to": task.assigned_to,
        "status": task.status.value,
        "due_date": task.due_date,
    }


def _require_member(context: ServerActionContext, user_id: int | None) -> None:
    """Assignees must belong to the same workspace"""
    if user_id is None:
        return
    if not WorkspaceMembershipRepository(context.db).is_member(user_id, context.workspace.id):
        raise ValidationException(
            "Assignee must be a member of this workspace",
            code="invalid_assignee",
            field="assigned_to",
        )


def _set_status(task: Task, status: TaskStatus) -> None:
    task.status = status
    task.completed_at = utc_now() if status == TaskStatus.COMPLETED else None


@workspace_action(
    "tasks.create",
    TaskCreate,
    required_role=WorkspaceRole.MEMBER,
    permissions=[Permission.TASKS_CREATE],
    audit="CREATE",
    resource_type="task",
)
def create_task(data: TaskCreate, context: ServerActionContext):
    _require_member(context, data.assigned_to)
    task = TaskRepository(context.db).create(
        Task(
            workspace_id=context.workspace.id,
            title=data.title,
            description=data.description,
            assigned_to=data.assigned_to,
            due_date=data.due_date,
            status=TaskStatus.PENDING,
            created_by=context.user.id,
        )
    )
    context.record_change(new_values=_snapshot(task))
    return success_result(TaskResponse.model_validate(task), "Task created successfully")


@workspace_action(
    "tasks.update",
    TaskUpdate,
    required_role=WorkspaceRole.MEMBER,
    permissions=[Permission.TASKS_UPDATE],
    audit="UPDATE",
    resource_type="task",
)
def update_task(data: TaskUpdate, context: ServerActionContext):
    repo = TaskRepository(context.db)
    task = _guard(context).require_access(context, data.task_id, "update")

    old_values = _snapshot(task)
    for field in ("title", "description", "due_date"):
        value = getattr(data, field)
        if value is not None:
            setattr(task, field, value)
    if data.status is not None and data.status != task.status:
        _set_status(task, data.status)
    task = repo.update(task)

    context.record_change(old_values, _snapshot(task))
    return success_result(TaskResponse.model_validate(task), "Task updated successfully")


@workspace_action(
    "tasks.complete",
    TaskIdInput,
    permissions=[Permission.TASKS_COMPLETE],
    audit="UPDATE",
    resource_type="task",
)
def complete_task(data: TaskIdInput, context: ServerActionContext):
    repo = TaskRepository(context.db)
    task = _guard(context).require_access(context, data.task_id, "complete")
    if task.status == TaskStatus.COMPLETED:
        raise ValidationException(
            "Task is already completed", code="invalid_state", field="status"
        )

    old_values = _snapshot(task)
    _set_status(task, TaskStatus.COMPLETED)
    task = repo.update(task)

    context.record_change(old_values, _snapshot(task))
    return success_result(TaskResponse.model_validate(task), "Task completed")


@workspace_action(
    "tasks.assign",
    TaskAssign,
    permissions=[Permission.TASKS_ASSIGN],
    audit="UPDATE",
    resource_type="task",
)
def assign_task(data: TaskAssign, context: ServerActionContext):
    """Assign to a workspace member, or unassign with assigned_to=None"""
    repo = TaskRepository(context.db)
    task = _guard(context).require_access(context, data.task_id, "assign")
    _require_member(context, data.assigned_to)

    old_values = _snapshot(task)
    task.assigned_to = data.assigned_to
    task = repo.update(task)

    context.record_change(old_values, _snapshot(task))
    message = "Task assigned" if data.assigned_to else "Task unassigned"
    return success_result(TaskResponse.model_validate(task), message)


@workspace_action(
    "tasks.delete",
    TaskIdInput,
    permissions=[Permission.TASKS_DELETE],
    audit="DELETE",
    resource_type="task",
)
def delete_task(data: TaskIdInput, context: ServerActionContext):
    repo = TaskRepository(context.db)
    task = _guard(context).require_access(context, data.task_id, "delete")
    context.record_change(old_values=_snapshot(task))
    repo.delete(task)
    return success_result(
        DeleteResponse(id=data.task_id, message="Task deleted successfully"),
        "Task deleted successfully",
    )


@workspace_action(
    "tasks.bulk",
    TaskBulkInput,
    required_role=WorkspaceRole.MEMBER,
    audit="BULK_OPERATION",
    resource_type="task",
)
def bulk_task_operation(data: TaskBulkInput, context: ServerActionContext):
    """
    Complete, delete or assign several tasks in one commit.

    Each id gets its own result. Ids that are missing or belong to another
    workspace fail individually without stopping the rest.
    """
    operation = data.operation.value
    permission = permission_for("tasks", operation)
    if not context.has_permission(permission):
        raise ResourceAccessDeniedException(
            f"Your role cannot {operation} tasks (requires {permission.value})"
        )
    if data.operation == BulkTaskOperation.ASSIGN:
        _require_member(context, data.assigned_to)

    guard = _guard(context)
    results = []
    for task_id in data.task_ids:
        task = guard.get(context, task_id)
        if task is None:
            results.append(TaskBulkItemResult(task_id=task_id, success=False, error="Task not found"))
            continue
        if data.operation == BulkTaskOperation.COMPLETE:
            if task.status == TaskStatus.COMPLETED:
                results.append(
                    TaskBulkItemResult(task_id=task_id, success=False, error="Task is already completed")
                )
                continue
            _set_status(task, TaskStatus.COMPLETED)
        elif data.operation == BulkTaskOperation.ASSIGN:
            task.assigned_to = data.assigned_to
        else:
            context.db.delete(task)
        results.append(TaskBulkItemResult(task_id=task_id, success=True))
    context.db.commit()

    succeeded = sum(1 for result in results if result.success)
    failed = len(results) - succeeded
    return success_result(
        TaskBulkResult(success_count=succeeded, failed_count=failed, results=results),
        f"Bulk operation completed: {succeeded} successful, {failed} failed",
    )


@workspace_action("tasks.get", TaskIdInput, permissions=[Permission.TASKS_READ])
def get_task(data: TaskIdInput, context: ServerActionContext):
    task = _guard(context).require_access(context, data.task_id, "read")
    return success_result(TaskResponse.model_validate(task))


@workspace_action("tasks.list", TaskListInput, permissions=[Permission.TASKS_READ])
def list_tasks(data: TaskListInput, context: ServerActionContext):
    tasks, total = TaskRepository(context.db).list_filtered(
        context.workspace.id,
        status=data.status,
        assigned_to=data.assigned_to,
        search=data.search,
        offset=data.offset,
        limit=data.limit,
    )
    items = [TaskResponse.model_validate(t) for t in tasks]
    return success_result(Page[TaskResponse].build(items, total, data))
