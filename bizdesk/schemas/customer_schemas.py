from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional

from bizdesk.schemas.common_schemas import WorkspaceInput, PageInput

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CustomerCreate(WorkspaceInput):
    """Schema for creating a customer"""

    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=1000)


class CustomerUpdate(WorkspaceInput):
    """Schema for updating a customer; omitted fields are left unchanged"""

    customer_id: int = Field(..., gt=0)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=1000)


class CustomerIdInput(WorkspaceInput):
    customer_id: int = Field(..., gt=0)


class CustomerListInput(WorkspaceInput, PageInput):
    """Search over name, email and phone; archived customers hidden by default"""

    search: Optional[str] = Field(None, min_length=1, max_length=255)
    archived: Optional[bool] = Field(False, description="None lists both")


class CustomerResponse(BaseModel):
    """Schema for customer response"""

    model_config = {"from_attributes": True}

    id: int
    workspace_id: int
    name: str
    email: Optional[str]
    phone: Optional[str]
    address: Optional[str]
    archived: bool
    archived_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class CustomerArchive(WorkspaceInput):
    """Archive (soft delete) or, with archived=False, restore a customer"""

    customer_id: int = Field(..., gt=0)
    archived: bool = True
