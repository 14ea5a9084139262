import json
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Any, Dict
from datetime import datetime


class CreditResponse(BaseModel):
    id: str
    user_id: str
    month: int
    year: int
    total_credits: int
    used_credits: int
    remaining_credits: int
    last_chat_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CreditUserSummary(BaseModel):
    id: str
    asgl_id: str
    email: Optional[str] = None
    name: Optional[str] = None


class CreditWithUserResponse(CreditResponse):
    user: Optional[CreditUserSummary] = None


class CreditUsageResponse(BaseModel):
    id: str
    user_id: str
    credit_id: str
    amount: int
    action: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime

    @field_validator("metadata", mode="before")
    @classmethod
    def parse_metadata(cls, value):
        if isinstance(value, str):
            return json.loads(value) if value else None
        return value

    class Config:
        from_attributes = True


class CreditBalanceResponse(BaseModel):
    allocated: bool
    month: int
    year: int
    total_credits: int = 0
    used_credits: int = 0
    remaining_credits: int = 0
    last_chat_at: Optional[datetime] = None


class CreditUseRequest(BaseModel):
    amount: int = Field(1, gt=0)
    action: str = "chat"
    metadata: Optional[Dict[str, Any]] = None


class CreditUseResponse(BaseModel):
    success: bool
    remaining_credits: int


class CreditCreate(BaseModel):
    user_identifier: str = Field(..., min_length=1)  # email or asgl_id
    amount: Optional[int] = Field(None, ge=0)
    month: Optional[int] = Field(None, ge=1, le=12)
    year: Optional[int] = Field(None, ge=2020)
    note: Optional[str] = None


class CreditUpdate(BaseModel):
    total_credits: Optional[int] = None
    used_credits: Optional[int] = None
    remaining_credits: Optional[int] = None


class BonusCreditRequest(BaseModel):
    user_id: str
    amount: int
    reason: str = Field(..., min_length=1)


class ResetRequest(BaseModel):
    month: Optional[int] = None
    year: Optional[int] = None


class ResetResponse(BaseModel):
    message: str
    count: int
    created: int
    month: int
    year: int


class CronRequest(BaseModel):
    action: str


class MonthlyCreditStats(BaseModel):
    month: int
    total_credits: int
    used_credits: int
    remaining_credits: int


class MonthlyStatsResponse(BaseModel):
    user_id: str
    year: int
    months: List[MonthlyCreditStats]
    total_used: int


class CreditStatsResponse(BaseModel):
    month: int
    year: int
    total_users: int
    total_allocated: int
    total_used: int
    total_remaining: int
    exhausted_users: int
