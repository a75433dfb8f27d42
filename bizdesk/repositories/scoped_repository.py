"""Base repository for rows that belong to exactly one workspace."""

from typing import Generic, TypeVar

from sqlalchemy.orm import Session, Query

ModelT = TypeVar("ModelT")


class WorkspaceScopedRepository(Generic[ModelT]):
    """
    Data access for a workspace-owned model.

    Every read goes through ``scoped()``, which filters on workspace_id, so
    a row from another workspace is indistinguishable from a missing row.
    Subclasses set ``model`` and add their own filters.
    """

    model: type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def scoped(self, workspace_id: int) -> Query:
        return self.db.query(self.model).filter(self.model.workspace_id == workspace_id)

    def get_by_id(self, resource_id: int) -> ModelT | None:
        """Unscoped lookup; only the scoped-resource guard should need this"""
        return self.db.query(self.model).filter(self.model.id == resource_id).first()

    def get_by_id_and_workspace(self, resource_id: int, workspace_id: int) -> ModelT | None:
        """
        Get a row ensuring it belongs to the workspace (multi-tenant safety).

        Returns None if the row doesn't exist or belongs to another workspace.
        """
        return self.scoped(workspace_id).filter(self.model.id == resource_id).first()

    def paginate(self, query: Query, offset: int, limit: int) -> tuple[list[ModelT], int]:
        """One page of ``query`` plus its exact total count"""
        total = query.order_by(None).count()
        return query.offset(offset).limit(limit).all(), total

    def create(self, obj: ModelT) -> ModelT:
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def add_no_commit(self, obj: ModelT) -> ModelT:
        """Stage without committing; caller commits the whole unit of work"""
        self.db.add(obj)
        self.db.flush()
        return obj

    def update(self, obj: ModelT) -> ModelT:
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def delete(self, obj: ModelT) -> None:
        self.db.delete(obj)
        self.db.commit()
