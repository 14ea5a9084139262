from enum import Enum
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime


class AccessAction(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"

    @property
    def flag(self) -> str:
        """Grant column deciding this action"""
        return f"can_{self.value}"


class ResourceType(str, Enum):
    DATASET = "dataset"
    DOCUMENT = "document"


class GrantFlags(BaseModel):
    can_view: bool = False
    can_edit: bool = False
    can_delete: bool = False


class GrantUpsert(GrantFlags):
    resource_type: ResourceType
    resource_id: str


class DatasetGrantResponse(GrantFlags):
    id: str
    user_id: str
    dataset_id: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DocumentGrantResponse(GrantFlags):
    id: str
    user_id: str
    document_id: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserGrantsResponse(BaseModel):
    user_id: str
    datasets: List[DatasetGrantResponse]
    documents: List[DocumentGrantResponse]


class BulkGrantUpdate(BaseModel):
    grants: List[GrantUpsert]
    replace: bool = False  # drop every grant of the user that is not listed


class BulkGrantResponse(BaseModel):
    user_id: str
    upserted_count: int
    removed_count: int
    message: str


class AccessCheckResponse(BaseModel):
    resource_type: ResourceType
    resource_id: str
    action: AccessAction
    allowed: bool
