from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class DocumentCreate(BaseModel):
    dataset_id: str
    name: str = Field(..., min_length=1)
    type: Optional[str] = None
    size: Optional[int] = Field(None, ge=0)
    remote_id: Optional[str] = None


class DocumentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    type: Optional[str] = None
    remote_id: Optional[str] = None


class DocumentResponse(BaseModel):
    id: str
    dataset_id: str
    name: str
    type: Optional[str] = None
    size: Optional[int] = None
    remote_id: Optional[str] = None
    owner_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
