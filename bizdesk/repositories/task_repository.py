from typing import Optional
from sqlalchemy import or_

from bizdesk.models.task import Task, TaskStatus
from bizdesk.repositories.scoped_repository import WorkspaceScopedRepository


class TaskRepository(WorkspaceScopedRepository[Task]):
    """Repository for Task data access"""

    model = Task

    def list_filtered(
        self,
        workspace_id: int,
        status: Optional[TaskStatus] = None,
        assigned_to: Optional[int] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Task], int]:
        query = self.scoped(workspace_id)
        if status is not None:
            query = query.filter(Task.status == status)
        if assigned_to is not None:
            query = query.filter(Task.assigned_to == assigned_to)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))
        query = query.order_by(Task.created_at.desc(), Task.id.desc())
        return self.paginate(query, offset, limit)

    def count_open(self, workspace_id: int) -> int:
        """Tasks not yet completed (pending or in progress)"""
        return self.scoped(workspace_id).filter(Task.status != TaskStatus.COMPLETED).count()
