from __future__ import annotations

import json

import httpx
import pytest
from postgrest.exceptions import APIError

from app.core.exceptions import Conflict, Forbidden, InvalidInput, NotFound, StoreTimeout, StoreUnavailable
from app.modules.credits.service import CreditLedger, previous_period


def _credit(fake, user_id: str, total: int, used: int, month: int = 9, year: int = 2025) -> dict:
    return fake.seed("credits", user_id=user_id, month=month, year=year,
                     total_credits=total, used_credits=used, remaining_credits=total - used)


def _row(fake, credit_id: str) -> dict:
    return next(c for c in fake.rows("credits") if c["id"] == credit_id)


def _assert_invariant(fake) -> None:
    for row in fake.rows("credits"):
        assert row["remaining_credits"] == row["total_credits"] - row["used_credits"]
        assert row["used_credits"] >= 0
        assert row["remaining_credits"] >= 0


def test_use_credit_deducts_and_logs(seeded, make_user, clock) -> None:
    user = make_user("alice")
    credit = _credit(seeded, user.id, total=10, used=0)
    ledger = CreditLedger(seeded, clock=clock)

    assert ledger.use_credit(user.id, 3, action="chat", metadata={"conversation": "c1"}) is True

    row = _row(seeded, credit["id"])
    assert (row["used_credits"], row["remaining_credits"]) == (3, 7)
    assert row["last_chat_at"] is not None
    usages = seeded.rows("credit_usages")
    assert len(usages) == 1
    assert usages[0]["amount"] == 3
    assert json.loads(usages[0]["metadata"]) == {"conversation": "c1"}
    _assert_invariant(seeded)


def test_use_credit_short_balance_writes_nothing(seeded, make_user, clock) -> None:
    user = make_user("alice")
    credit = _credit(seeded, user.id, total=10, used=9)
    ledger = CreditLedger(seeded, clock=clock)

    assert ledger.use_credit(user.id, 2) is False
    assert _row(seeded, credit["id"])["remaining_credits"] == 1
    assert seeded.rows("credit_usages") == []


def test_unallocated_user_has_no_credit(seeded, make_user, clock) -> None:
    user = make_user("alice")
    _credit(seeded, user.id, total=10, used=0, month=8)
    ledger = CreditLedger(seeded, clock=clock)

    assert ledger.get_current_credit(user.id) is None
    assert ledger.has_enough_credit(user.id) is False
    assert ledger.use_credit(user.id) is False


@pytest.mark.parametrize("amount", [0, -1, 1.5, True])
def test_use_credit_rejects_non_positive_integers(seeded, make_user, clock, amount) -> None:
    user = make_user("alice")
    with pytest.raises(InvalidInput):
        CreditLedger(seeded, clock=clock).use_credit(user.id, amount)


def test_usage_log_failure_rolls_back_deduction(seeded, make_user, clock) -> None:
    user = make_user("alice")
    credit = _credit(seeded, user.id, total=10, used=0)
    seeded.store.fail_next("credit_usages", "insert", httpx.ReadTimeout("timed out"))

    with pytest.raises(StoreTimeout):
        CreditLedger(seeded, clock=clock).use_credit(user.id, 4)

    row = _row(seeded, credit["id"])
    assert (row["used_credits"], row["remaining_credits"]) == (0, 10)
    assert seeded.rows("credit_usages") == []


def test_deduction_and_usage_row_are_one_store_call(seeded, make_user, clock) -> None:
    user = make_user("alice")
    _credit(seeded, user.id, total=10, used=0)
    seeded.store.statements.clear()

    CreditLedger(seeded, clock=clock).use_credit(user.id, 2)

    assert [s for s in seeded.store.statements if s[0] == "rpc"] == [("rpc", "use_credit")]


def test_function_call_failure_changes_nothing(seeded, make_user, clock) -> None:
    user = make_user("alice")
    credit = _credit(seeded, user.id, total=10, used=0)
    seeded.store.fail_next("rpc", "use_credit", httpx.ConnectError("refused"))

    with pytest.raises(StoreUnavailable):
        CreditLedger(seeded, clock=clock).use_credit(user.id, 4)

    assert _row(seeded, credit["id"])["remaining_credits"] == 10
    assert seeded.rows("credit_usages") == []


def test_bonus_and_admin_update_roll_back_without_their_audit_row(seeded, make_user, clock) -> None:
    root = make_user("root", roles=["super_admin"])
    credit = _credit(seeded, root.id, total=100, used=10)
    ledger = CreditLedger(seeded, clock=clock)
    seeded.store.fail_next("credit_usages", "insert", httpx.ReadTimeout("timed out"), times=2)

    with pytest.raises(StoreTimeout):
        ledger.add_bonus_credit(root.id, 50, "referral")
    with pytest.raises(StoreTimeout):
        ledger.update_credit(root, credit["id"], total_credits=500)

    row = _row(seeded, credit["id"])
    assert (row["total_credits"], row["used_credits"], row["remaining_credits"]) == (100, 10, 90)
    assert seeded.rows("credit_usages") == []


def test_admin_update_gives_up_when_balance_keeps_moving(seeded, make_user, clock, monkeypatch) -> None:
    root = make_user("root", roles=["super_admin"])
    credit = _credit(seeded, root.id, total=10, used=0)
    ledger = CreditLedger(seeded, clock=clock)
    # The balance changes between every read and write
    monkeypatch.setattr(ledger, "_call", lambda function, params: None)

    with pytest.raises(StoreTimeout):
        ledger.update_credit(root, credit["id"], total_credits=20)


def test_has_enough_credit_validates_amount(seeded, make_user, clock) -> None:
    user = make_user("alice")
    _credit(seeded, user.id, total=10, used=0)
    ledger = CreditLedger(seeded, clock=clock)

    with pytest.raises(InvalidInput):
        ledger.has_enough_credit(user.id, -5)
    assert ledger.has_enough_credit(user.id, 10)
    assert not ledger.has_enough_credit(user.id, 11)


def test_bonus_accounting(seeded, make_user, clock) -> None:
    user = make_user("alice")
    credit = _credit(seeded, user.id, total=100, used=60)

    result = CreditLedger(seeded, clock=clock).add_bonus_credit(user.id, 50, "referral")

    assert (result.total_credits, result.used_credits, result.remaining_credits) == (150, 60, 90)
    assert _row(seeded, credit["id"])["remaining_credits"] == 90
    usages = seeded.rows("credit_usages")
    assert len(usages) == 1
    assert usages[0]["amount"] == 0
    assert usages[0]["action"] == "bonus"
    assert json.loads(usages[0]["metadata"]) == {"reason": "referral", "bonus_amount": 50}


def test_bonus_allocates_missing_period(seeded, make_user, clock) -> None:
    user = make_user("alice")
    result = CreditLedger(seeded, clock=clock).add_bonus_credit(user.id, 25, "welcome")
    assert (result.month, result.year) == (9, 2025)
    assert result.total_credits == 225
    assert result.remaining_credits == 225


def test_update_credit_validation(seeded, make_user, clock) -> None:
    root = make_user("root", roles=["super_admin"])
    admin = make_user("ops", roles=["admin"])
    credit = _credit(seeded, root.id, total=100, used=10)
    ledger = CreditLedger(seeded, clock=clock)

    with pytest.raises(Forbidden):
        ledger.update_credit(admin, credit["id"], total_credits=50)
    with pytest.raises(InvalidInput):
        ledger.update_credit(root, credit["id"], used_credits=-1)
    with pytest.raises(InvalidInput):
        ledger.update_credit(root, credit["id"], total_credits=5)
    with pytest.raises(InvalidInput):
        ledger.update_credit(root, credit["id"], total_credits=50, remaining_credits=45)
    with pytest.raises(NotFound):
        ledger.update_credit(root, "missing", total_credits=50)

    updated = ledger.update_credit(root, credit["id"], total_credits=50)
    assert (updated.total_credits, updated.used_credits, updated.remaining_credits) == (50, 10, 40)
    audit = seeded.rows("credit_usages")
    assert [(u["action"], u["amount"]) for u in audit] == [("admin_update", 0)]
    _assert_invariant(seeded)


def test_create_credit_by_identifier(seeded, make_user, clock) -> None:
    root = make_user("root", roles=["super_admin"])
    alice = make_user("alice", email="alice@corp.example")
    ledger = CreditLedger(seeded, clock=clock)

    created = ledger.create_credit(root, "alice@corp.example", amount=300, note="pilot")
    assert (created.user_id, created.total_credits, created.remaining_credits) == (alice.id, 300, 300)
    assert seeded.rows("credit_usages")[0]["action"] == "system_create"

    with pytest.raises(Conflict):
        ledger.create_credit(root, "alice")
    with pytest.raises(NotFound):
        ledger.create_credit(root, "nobody")
    with pytest.raises(Forbidden):
        ledger.create_credit(alice, "alice", month=10)


def test_reset_is_idempotent_and_rolls_over_the_year(seeded, make_user, clock) -> None:
    alice = make_user("alice")
    bob = make_user("bob")
    make_user("carol")
    _credit(seeded, alice.id, total=200, used=200, month=8)
    _credit(seeded, bob.id, total=200, used=5, month=8)
    _credit(seeded, bob.id, total=200, used=0, month=9)
    ledger = CreditLedger(seeded, clock=clock)

    first = ledger.reset_monthly_credits(9, 2025)
    second = ledger.reset_monthly_credits(9, 2025)

    assert (first.count, first.created) == (2, 1)
    assert (second.count, second.created) == (2, 0)
    september = [c for c in seeded.rows("credits") if (c["month"], c["year"]) == (9, 2025)]
    assert len(september) == 2
    alice_row = next(c for c in september if c["user_id"] == alice.id)
    assert (alice_row["total_credits"], alice_row["used_credits"]) == (200, 0)

    assert previous_period(1, 2026) == (12, 2025)
    _credit(seeded, alice.id, total=200, used=0, month=12)
    january = ledger.reset_monthly_credits(1, 2026)
    assert (january.count, january.created) == (1, 1)


@pytest.mark.parametrize("month,year", [(0, 2025), (13, 2025), (6, 2019)])
def test_reset_rejects_bad_period(seeded, clock, month, year) -> None:
    with pytest.raises(InvalidInput):
        CreditLedger(seeded, clock=clock).reset_monthly_credits(month, year)


def test_ensure_allocation_only_once(seeded, make_user, clock) -> None:
    user = make_user("alice")
    ledger = CreditLedger(seeded, clock=clock)
    first = ledger.ensure_allocation(user.id)
    second = ledger.ensure_allocation(user.id)
    assert first.id == second.id
    assert first.remaining_credits == 200


def test_history_and_stats(seeded, make_user, clock) -> None:
    user = make_user("alice")
    _credit(seeded, user.id, total=200, used=20, month=8)
    _credit(seeded, user.id, total=200, used=0)
    ledger = CreditLedger(seeded, clock=clock)
    ledger.use_credit(user.id, 2)
    ledger.use_credit(user.id, 1, action="summarize")

    history = ledger.get_usage_history(user.id)
    assert [h.action for h in history] == ["summarize", "chat"]

    monthly = ledger.get_monthly_stats(user.id, 2025)
    assert [m.month for m in monthly.months] == [8, 9]
    assert monthly.total_used == 23

    stats = ledger.get_credit_stats()
    assert (stats.total_users, stats.total_used, stats.total_remaining) == (1, 3, 197)


def test_store_constraint_rejects_broken_balance(seeded, make_user) -> None:
    user = make_user("alice")
    with pytest.raises(APIError):
        seeded.seed("credits", user_id=user.id, month=9, year=2025,
                    total_credits=10, used_credits=5, remaining_credits=6)
