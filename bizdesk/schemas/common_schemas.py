from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from bizdesk.config import settings

ItemT = TypeVar("ItemT")


class WorkspaceInput(BaseModel):
    """
    Workspace selector carried by every workspace-scoped action input.

    Both fields are optional at validation time: a missing selector is
    reported by workspace resolution as ``workspace_required``. When both are
    present the id wins.
    """

    workspace_id: Optional[int] = Field(None, gt=0)
    workspace_slug: Optional[str] = Field(None, min_length=1, max_length=50)


class PageInput(BaseModel):
    """Page selection shared by list actions"""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Page(BaseModel, Generic[ItemT]):
    """One page of results plus the exact total row count"""

    items: list[ItemT]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, items: list, total: int, page_input: PageInput) -> "Page":
        total_pages = (total + page_input.limit - 1) // page_input.limit if total else 0
        return cls(
            items=items,
            total=total,
            page=page_input.page,
            limit=page_input.limit,
            total_pages=total_pages,
        )


class DeleteResponse(BaseModel):
    """Response after deleting a resource"""

    id: int
    message: str
