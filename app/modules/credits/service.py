"""
Credit ledger: per-user, per-month balances with atomic check-and-use.

Every balance change and its credit_usages row are written by one Postgres
function (see models.py), called through rpc, so a deduction can never exist
without its audit entry. use_credit and the bonus adjust the row relative to
its current value; admin overwrites match the balance they were computed
from and retry when it moved.
"""

import json
import logging
import time
from datetime import datetime, timezone
from supabase import Client
from app.config.settings import settings
from app.core.exceptions import Conflict, Forbidden, InvalidInput, NotFound, StoreTimeout
from app.core.permissions import Principal, is_super_admin
from app.database.supabase_client import store_call
from app.modules.credits.schemas import (
    CreditResponse, CreditWithUserResponse, CreditUsageResponse,
    MonthlyCreditStats, MonthlyStatsResponse, CreditStatsResponse, ResetResponse
)
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

MIN_RESET_YEAR = 2020


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def previous_period(month: int, year: int) -> Tuple[int, int]:
    if month == 1:
        return 12, year - 1
    return month - 1, year


def validate_period(month: int, year: int) -> None:
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidInput("Month must be between 1 and 12")
    if not isinstance(year, int) or year < MIN_RESET_YEAR:
        raise InvalidInput(f"Year must be {MIN_RESET_YEAR} or later")


def _validate_amount(amount: Any) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidInput("Amount must be a positive integer")


class CreditLedger:
    def __init__(self, supabase: Client, clock: Optional[Callable[[], datetime]] = None):
        self.supabase = supabase
        self.clock = clock or _utcnow

    def current_period(self) -> Tuple[int, int]:
        now = self.clock()
        return now.month, now.year

    # Row access

    def _get_period_row(self, user_id: str, month: int, year: int) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("credits")\
            .select("*")\
            .eq("user_id", user_id)\
            .eq("month", month)\
            .eq("year", year)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def _get_row_by_id(self, credit_id: str) -> Dict[str, Any]:
        result = self.supabase.table("credits")\
            .select("*")\
            .eq("id", credit_id)\
            .limit(1)\
            .execute()

        if not result.data:
            raise NotFound("Credit record not found")

        return result.data[0]

    def _get_or_create_period_row(self, user_id: str, month: int, year: int) -> Dict[str, Any]:
        row = self._get_period_row(user_id, month, year)
        if row is not None:
            return row

        default = settings.default_monthly_credits
        self.supabase.table("credits").upsert(
            {
                "user_id": user_id,
                "month": month,
                "year": year,
                "total_credits": default,
                "used_credits": 0,
                "remaining_credits": default,
            },
            on_conflict="user_id,month,year",
            ignore_duplicates=True
        ).execute()
        return self._get_period_row(user_id, month, year)

    def _call(self, function: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Run a ledger function; it returns the changed credits row, or nothing when it did not apply"""
        result = self.supabase.rpc(function, params).execute()
        return result.data[0] if result.data else None

    def _backoff(self, attempt: int) -> None:
        time.sleep(settings.credit_cas_backoff_seconds * (attempt + 1))

    # Reads

    @store_call
    def get_current_credit(self, user_id: str) -> Optional[CreditResponse]:
        month, year = self.current_period()
        row = self._get_period_row(user_id, month, year)
        return CreditResponse(**row) if row else None

    @store_call
    def has_enough_credit(self, user_id: str, amount: int = 1) -> bool:
        _validate_amount(amount)
        credit = self.get_current_credit(user_id)
        if credit is None:
            return False
        return credit.remaining_credits >= amount

    @store_call
    def get_credit_by_id(self, credit_id: str) -> CreditResponse:
        return CreditResponse(**self._get_row_by_id(credit_id))

    @store_call
    def get_usage_history(self, user_id: str, limit: int = 50) -> List[CreditUsageResponse]:
        result = self.supabase.table("credit_usages")\
            .select("*")\
            .eq("user_id", user_id)\
            .order("created_at", desc=True)\
            .limit(limit)\
            .execute()
        return [CreditUsageResponse(**usage) for usage in result.data or []]

    @store_call
    def get_monthly_stats(self, user_id: str, year: Optional[int] = None) -> MonthlyStatsResponse:
        if year is None:
            year = self.current_period()[1]
        result = self.supabase.table("credits")\
            .select("*")\
            .eq("user_id", user_id)\
            .eq("year", year)\
            .order("month")\
            .execute()

        months = [
            MonthlyCreditStats(
                month=row["month"],
                total_credits=row["total_credits"],
                used_credits=row["used_credits"],
                remaining_credits=row["remaining_credits"],
            )
            for row in result.data or []
        ]
        return MonthlyStatsResponse(
            user_id=user_id,
            year=year,
            months=months,
            total_used=sum(m.used_credits for m in months)
        )

    @store_call
    def list_credits(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        query: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[CreditWithUserResponse]:
        """List balances of one period with their users; query matches email, asgl_id or name"""
        if month is None or year is None:
            current_month, current_year = self.current_period()
            month = month or current_month
            year = year or current_year

        request = self.supabase.table("credits")\
            .select("*, users(id, asgl_id, email, name)")\
            .eq("month", month)\
            .eq("year", year)

        if query:
            pattern = f"%{query}%"
            users = self.supabase.table("users")\
                .select("id")\
                .or_(f"email.ilike.{pattern},asgl_id.ilike.{pattern},name.ilike.{pattern}")\
                .execute()
            user_ids = [u["id"] for u in users.data or []]
            if not user_ids:
                return []
            request = request.in_("user_id", user_ids)

        result = request.order("remaining_credits")\
            .limit(limit)\
            .offset(offset)\
            .execute()

        credits = []
        for row in result.data or []:
            credit_data = dict(row)
            credit_data["user"] = credit_data.pop("users", None)
            credits.append(CreditWithUserResponse(**credit_data))
        return credits

    @store_call
    def get_credit_stats(self, month: Optional[int] = None, year: Optional[int] = None) -> CreditStatsResponse:
        if month is None or year is None:
            current_month, current_year = self.current_period()
            month = month or current_month
            year = year or current_year

        result = self.supabase.table("credits")\
            .select("total_credits, used_credits, remaining_credits")\
            .eq("month", month)\
            .eq("year", year)\
            .execute()
        rows = result.data or []

        return CreditStatsResponse(
            month=month,
            year=year,
            total_users=len(rows),
            total_allocated=sum(r["total_credits"] for r in rows),
            total_used=sum(r["used_credits"] for r in rows),
            total_remaining=sum(r["remaining_credits"] for r in rows),
            exhausted_users=sum(1 for r in rows if r["remaining_credits"] == 0)
        )

    # Mutations

    @store_call
    def ensure_allocation(self, user_id: str) -> CreditResponse:
        """Allocate the current period with the default amount unless already present"""
        month, year = self.current_period()
        return CreditResponse(**self._get_or_create_period_row(user_id, month, year))

    @store_call
    def use_credit(
        self,
        user_id: str,
        amount: int = 1,
        action: str = "chat",
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Deduct amount from the current period. False when unallocated or short; no write then."""
        _validate_amount(amount)
        month, year = self.current_period()

        updated = self._call("use_credit", {
            "p_user_id": user_id,
            "p_month": month,
            "p_year": year,
            "p_amount": amount,
            "p_action": action,
            "p_metadata": json.dumps(metadata) if metadata is not None else None,
            "p_at": self.clock().isoformat(),
        })
        if updated is None:
            return False

        logger.info(f"Used {amount} credit(s) for user {user_id}: {updated['remaining_credits']} remaining")
        return True

    @store_call
    def add_bonus_credit(self, user_id: str, amount: int, reason: str) -> CreditResponse:
        """Raise total and remaining by amount; logged as a zero-amount 'bonus' entry"""
        _validate_amount(amount)
        month, year = self.current_period()

        row = self._get_or_create_period_row(user_id, month, year)
        updated = self._call("add_bonus_credit", {
            "p_credit_id": row["id"],
            "p_amount": amount,
            "p_metadata": json.dumps({"reason": reason, "bonus_amount": amount}),
            "p_at": self.clock().isoformat(),
        })
        if updated is None:
            raise NotFound("Credit record not found")

        logger.info(f"Added {amount} bonus credit(s) for user {user_id}: {reason}")
        return CreditResponse(**updated)

    @store_call
    def create_credit(
        self,
        actor: Principal,
        user_identifier: str,
        amount: Optional[int] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
        note: Optional[str] = None
    ) -> CreditResponse:
        """Allocate a period for a user found by email or asgl_id"""
        if not is_super_admin(actor):
            raise Forbidden("Only superadmins can create credit records")

        current_month, current_year = self.current_period()
        month = month if month is not None else current_month
        year = year if year is not None else current_year
        validate_period(month, year)
        total = settings.default_monthly_credits if amount is None else amount
        if total < 0:
            raise InvalidInput("Amount must not be negative")

        user_id = None
        for column in ("email", "asgl_id"):
            users = self.supabase.table("users")\
                .select("id")\
                .eq(column, user_identifier)\
                .limit(1)\
                .execute()
            if users.data:
                user_id = users.data[0]["id"]
                break
        if user_id is None:
            raise NotFound(f"User not found: {user_identifier}")

        if self._get_period_row(user_id, month, year) is not None:
            raise Conflict(f"Credit record already exists for {month}/{year}")

        row = self._call("allocate_credit", {
            "p_user_id": user_id,
            "p_month": month,
            "p_year": year,
            "p_total": total,
            "p_metadata": json.dumps({
                "note": note,
                "total_credits": total,
                "created_by": actor.asgl_id,
            }),
        })
        logger.info(f"Created credit record {month}/{year} for user {user_id} with {total} credit(s)")
        return CreditResponse(**row)

    @store_call
    def update_credit(
        self,
        actor: Principal,
        credit_id: str,
        total_credits: Optional[int] = None,
        used_credits: Optional[int] = None,
        remaining_credits: Optional[int] = None
    ) -> CreditResponse:
        """Overwrite a balance. remaining is derived from total - used, or must agree with it."""
        if not is_super_admin(actor):
            raise Forbidden("Only superadmins can update credit records")
        for name, value in (("total_credits", total_credits), ("used_credits", used_credits),
                            ("remaining_credits", remaining_credits)):
            if value is not None and value < 0:
                raise InvalidInput(f"{name} must not be negative")

        for attempt in range(settings.credit_cas_max_retries):
            row = self._get_row_by_id(credit_id)
            total = row["total_credits"] if total_credits is None else total_credits
            used = row["used_credits"] if used_credits is None else used_credits
            remaining = total - used
            if remaining < 0:
                raise InvalidInput("used_credits cannot exceed total_credits")
            if remaining_credits is not None and remaining_credits != remaining:
                raise InvalidInput("remaining_credits must equal total_credits - used_credits")

            updated = self._call("set_credit_balance", {
                "p_credit_id": credit_id,
                "p_expected_total": row["total_credits"],
                "p_expected_used": row["used_credits"],
                "p_total": total,
                "p_used": used,
                "p_metadata": json.dumps({
                    "before": {k: row[k] for k in ("total_credits", "used_credits", "remaining_credits")},
                    "after": {"total_credits": total, "used_credits": used, "remaining_credits": remaining},
                    "updated_by": actor.asgl_id,
                }),
                "p_at": self.clock().isoformat(),
            })
            if updated is not None:
                break
            logger.debug(f"Credit record {credit_id} changed while updating (attempt {attempt + 1})")
            self._backoff(attempt)
        else:
            raise StoreTimeout("Credit balance is too contended, try again")

        logger.info(f"Credit record {credit_id} updated by {actor.asgl_id}")
        return CreditResponse(**updated)

    @store_call
    def reset_monthly_credits(self, month: Optional[int] = None, year: Optional[int] = None) -> ResetResponse:
        """Allocate the period for everyone who had one the month before. Rows already present are left alone."""
        current_month, current_year = self.current_period()
        month = current_month if month is None else month
        year = current_year if year is None else year
        validate_period(month, year)

        prev_month, prev_year = previous_period(month, year)
        previous = self.supabase.table("credits")\
            .select("user_id")\
            .eq("month", prev_month)\
            .eq("year", prev_year)\
            .execute()
        user_ids = list(dict.fromkeys(row["user_id"] for row in previous.data or []))

        created = 0
        if user_ids:
            default = settings.default_monthly_credits
            result = self.supabase.table("credits").upsert(
                [
                    {
                        "user_id": user_id,
                        "month": month,
                        "year": year,
                        "total_credits": default,
                        "used_credits": 0,
                        "remaining_credits": default,
                    }
                    for user_id in user_ids
                ],
                on_conflict="user_id,month,year",
                ignore_duplicates=True
            ).execute()
            created = len(result.data or [])

        logger.info(f"Monthly reset {month}/{year}: {created} of {len(user_ids)} user(s) allocated")
        return ResetResponse(
            message=f"Reset credits for {month}/{year}",
            count=len(user_ids),
            created=created,
            month=month,
            year=year
        )
