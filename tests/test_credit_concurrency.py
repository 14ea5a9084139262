from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

from app.modules.credits.service import CreditLedger


def test_concurrent_use_credit_never_oversells(seeded, make_user, clock) -> None:
    user = make_user("alice")
    credit = seeded.seed("credits", user_id=user.id, month=9, year=2025,
                         total_credits=5, used_credits=0, remaining_credits=5)
    ledger = CreditLedger(seeded, clock=clock)
    start = threading.Barrier(20)

    def attempt() -> bool:
        start.wait()
        return ledger.use_credit(user.id, 1)

    with ThreadPoolExecutor(max_workers=20) as pool:
        results = list(pool.map(lambda _: attempt(), range(20)))

    assert results.count(True) == 5
    row = next(c for c in seeded.rows("credits") if c["id"] == credit["id"])
    assert (row["used_credits"], row["remaining_credits"]) == (5, 0)
    assert len(seeded.rows("credit_usages")) == 5


def test_concurrent_bonus_and_use_keep_invariant(seeded, make_user, clock) -> None:
    user = make_user("alice")
    seeded.seed("credits", user_id=user.id, month=9, year=2025,
                total_credits=4, used_credits=0, remaining_credits=4)
    ledger = CreditLedger(seeded, clock=clock)

    def work(i: int) -> bool:
        if i % 4 == 0:
            ledger.add_bonus_credit(user.id, 1, "load test")
            return False
        return ledger.use_credit(user.id, 1)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(work, range(16)))

    row = seeded.rows("credits")[0]
    assert row["total_credits"] == 8
    assert row["used_credits"] == results.count(True)
    assert row["remaining_credits"] == row["total_credits"] - row["used_credits"]
