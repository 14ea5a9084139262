from fastapi import APIRouter, Depends
from app.core.dependencies import get_current_principal, require_super_admin
from app.core.exceptions import InsufficientCredit, InvalidInput
from app.core.permissions import Principal
from app.database.supabase_client import get_supabase
from app.modules.credits.schemas import (
    CreditResponse, CreditWithUserResponse, CreditUsageResponse, CreditBalanceResponse,
    CreditUseRequest, CreditUseResponse, CreditCreate, CreditUpdate, BonusCreditRequest,
    ResetRequest, ResetResponse, CronRequest, MonthlyStatsResponse, CreditStatsResponse
)
from app.modules.credits.service import CreditLedger
from supabase import Client
from typing import List, Optional

router = APIRouter(prefix="/credits", tags=["credits"])
admin_router = APIRouter(prefix="/admin", tags=["admin-credits"])

RESET_MONTHLY_CREDITS_ACTION = "reset-monthly-credits"


def get_credit_ledger(supabase: Client = Depends(get_supabase)) -> CreditLedger:
    return CreditLedger(supabase)


# Principal endpoints
@router.get("", response_model=CreditBalanceResponse)
async def get_my_credits(
    principal: Principal = Depends(get_current_principal),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    """Current period balance; allocated=false when nothing was allocated yet"""
    month, year = ledger.current_period()
    credit = ledger.get_current_credit(principal.id)
    if credit is None:
        return CreditBalanceResponse(allocated=False, month=month, year=year)
    return CreditBalanceResponse(
        allocated=True,
        month=credit.month,
        year=credit.year,
        total_credits=credit.total_credits,
        used_credits=credit.used_credits,
        remaining_credits=credit.remaining_credits,
        last_chat_at=credit.last_chat_at
    )


@router.get("/history", response_model=List[CreditUsageResponse])
async def get_my_history(
    limit: int = 50,
    principal: Principal = Depends(get_current_principal),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    return ledger.get_usage_history(principal.id, limit=limit)


@router.get("/stats", response_model=MonthlyStatsResponse)
async def get_my_monthly_stats(
    year: Optional[int] = None,
    principal: Principal = Depends(get_current_principal),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    return ledger.get_monthly_stats(principal.id, year=year)


@router.post("/use", response_model=CreditUseResponse)
async def use_credit(
    body: CreditUseRequest,
    principal: Principal = Depends(get_current_principal),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    """Deduct credits for a billable action (402 when the balance is short)"""
    if not ledger.use_credit(principal.id, amount=body.amount, action=body.action, metadata=body.metadata):
        raise InsufficientCredit("Not enough credits remaining for this period")
    credit = ledger.get_current_credit(principal.id)
    return CreditUseResponse(success=True, remaining_credits=credit.remaining_credits if credit else 0)


# Admin endpoints (superadmin only)
@admin_router.get("/credits", response_model=List[CreditWithUserResponse])
async def list_credits(
    month: Optional[int] = None,
    year: Optional[int] = None,
    query: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    principal: Principal = Depends(require_super_admin),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    return ledger.list_credits(month=month, year=year, query=query, limit=limit, offset=offset)


@admin_router.get("/credits/stats", response_model=CreditStatsResponse)
async def get_credit_stats(
    month: Optional[int] = None,
    year: Optional[int] = None,
    principal: Principal = Depends(require_super_admin),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    return ledger.get_credit_stats(month=month, year=year)


@admin_router.post("/credits", response_model=CreditResponse, status_code=201)
async def create_credit(
    body: CreditCreate,
    principal: Principal = Depends(require_super_admin),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    """Allocate a period for a user identified by email or asgl_id"""
    return ledger.create_credit(
        principal,
        body.user_identifier,
        amount=body.amount,
        month=body.month,
        year=body.year,
        note=body.note
    )


@admin_router.post("/credits/bonus", response_model=CreditResponse)
async def add_bonus_credit(
    body: BonusCreditRequest,
    principal: Principal = Depends(require_super_admin),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    return ledger.add_bonus_credit(body.user_id, body.amount, body.reason)


@admin_router.post("/credits/reset", response_model=ResetResponse)
async def reset_monthly_credits(
    body: ResetRequest,
    principal: Principal = Depends(require_super_admin),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    return ledger.reset_monthly_credits(month=body.month, year=body.year)


@admin_router.get("/credits/{credit_id}", response_model=CreditResponse)
async def get_credit(
    credit_id: str,
    principal: Principal = Depends(require_super_admin),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    return ledger.get_credit_by_id(credit_id)


@admin_router.put("/credits/{credit_id}", response_model=CreditResponse)
async def update_credit(
    credit_id: str,
    body: CreditUpdate,
    principal: Principal = Depends(require_super_admin),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    return ledger.update_credit(
        principal,
        credit_id,
        total_credits=body.total_credits,
        used_credits=body.used_credits,
        remaining_credits=body.remaining_credits
    )


@admin_router.post("/cron", response_model=ResetResponse)
async def run_cron(
    body: CronRequest,
    principal: Principal = Depends(require_super_admin),
    ledger: CreditLedger = Depends(get_credit_ledger)
):
    """Manual trigger for scheduled jobs"""
    if body.action != RESET_MONTHLY_CREDITS_ACTION:
        raise InvalidInput(f"Unknown cron action: {body.action}")
    return ledger.reset_monthly_credits()
