"""
Pytest config.

The project is laid out as a namespace package (`app/` without __init__.py),
so pin the repo root on sys.path for collection regardless of how pytest is
invoked. Service tests run against the in-memory store in fake_supabase.py.
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    for path in (repo_root, repo_root / "tests"):
        path_str = str(path)
        if path_str not in sys.path:
            sys.path.insert(0, path_str)


_ensure_repo_root_on_syspath()

from app.config.settings import settings  # noqa: E402
from app.core.permissions import Principal  # noqa: E402
from app.modules.auth.service import clear_auth_cache  # noqa: E402
from app.modules.roles.service import RoleService  # noqa: E402
from app.modules.users.service import UserService  # noqa: E402
from fake_supabase import FakeSupabase  # noqa: E402

FIXED_NOW = datetime(2025, 9, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _fast_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep retries quick and pin the values the tests rely on."""
    monkeypatch.setattr(settings, "credit_cas_backoff_seconds", 0.001)
    monkeypatch.setattr(settings, "credit_cas_max_retries", 10)
    monkeypatch.setattr(settings, "default_monthly_credits", 200)
    monkeypatch.setattr(settings, "legacy_admin_ids", "admin,superadmin")
    monkeypatch.setattr(settings, "legacy_superadmin_id", "superadmin")
    monkeypatch.setattr(settings, "auto_allocate_new_users", False)
    clear_auth_cache()


@pytest.fixture
def fake() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def seeded(fake: FakeSupabase) -> FakeSupabase:
    """Store with the default permission matrix and roles in place."""
    RoleService(fake).initialize_defaults()
    return fake


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def make_user(seeded: FakeSupabase) -> Callable[..., Principal]:
    """Create a users row with the named roles and return its Principal."""

    def _make(asgl_id: str, roles: Iterable[str] = (), email: Optional[str] = None) -> Principal:
        row = seeded.seed("users", asgl_id=asgl_id, email=email or f"{asgl_id}@example.com", name=asgl_id)
        role_service = RoleService(seeded)
        for role_name in roles:
            role = role_service.get_role_by_name(role_name)
            seeded.seed("user_roles", user_id=row["id"], role_id=role.id)
        return UserService(seeded).load_principal(row["id"])

    return _make
