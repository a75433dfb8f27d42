from pydantic import BaseModel, Field

from bizdesk.schemas.common_schemas import WorkspaceInput


class FileUploadCheck(WorkspaceInput):
    """Metadata of a file the client wants to attach (e.g. an expense receipt)"""

    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(..., ge=0)
    content_type: str = Field(..., min_length=1, max_length=255)


class FileUploadVerdict(BaseModel):
    valid: bool
    errors: list[str]
