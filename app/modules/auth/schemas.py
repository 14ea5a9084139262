from pydantic import BaseModel, EmailStr
from typing import Optional, List


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str


class MeResponse(BaseModel):
    id: str
    asgl_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    roles: List[str]
    permissions: List[str]
    is_admin: bool
    is_super_admin: bool


class CheckAdminResponse(BaseModel):
    is_admin: bool
    is_super_admin: bool
