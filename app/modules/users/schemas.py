from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime


class UserCreate(BaseModel):
    asgl_id: str = Field(..., min_length=1)
    email: EmailStr
    name: Optional[str] = None
    password: Optional[str] = Field(None, min_length=8)
    role_ids: List[str] = []


class UserUpdate(BaseModel):
    asgl_id: Optional[str] = None
    email: Optional[EmailStr] = None
    name: Optional[str] = None
    password: Optional[str] = Field(None, min_length=8)


class UserResponse(BaseModel):
    id: str
    asgl_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserRoleSummary(BaseModel):
    id: str
    name: str
    description: Optional[str] = None


class UserWithRolesResponse(UserResponse):
    roles: List[UserRoleSummary] = []


class UserRoleAssign(BaseModel):
    role_id: str


class UserRolesReplace(BaseModel):
    role_ids: List[str]


class UserRoleResponse(BaseModel):
    id: str
    user_id: str
    role_id: str
    created_at: datetime

    class Config:
        from_attributes = True
