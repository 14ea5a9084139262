from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class DatasetCreate(BaseModel):
    name: str = Field(..., min_length=1)
    parent_id: Optional[str] = None
    remote_id: Optional[str] = None


class DatasetUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    parent_id: Optional[str] = None  # explicit null moves the dataset to the root
    remote_id: Optional[str] = None


class DatasetResponse(BaseModel):
    id: str
    name: str
    parent_id: Optional[str] = None
    remote_id: Optional[str] = None
    owner_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DatasetTreeResponse(DatasetResponse):
    documents: List[dict] = []
    children: List["DatasetTreeResponse"] = []


DatasetTreeResponse.model_rebuild()
