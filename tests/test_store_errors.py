from __future__ import annotations

import httpx
import pytest
from postgrest.exceptions import APIError

from app.core.exceptions import (
    Conflict,
    InvalidInput,
    NotFound,
    StoreTimeout,
    StoreUnavailable,
    Unauthorized,
)
from app.database.supabase_client import store_call, translate_store_error
from app.modules.auth import service as auth_service
from app.modules.auth.schemas import LoginRequest
from app.modules.auth.service import AuthService
from app.modules.roles.schemas import RoleCreate
from app.modules.roles.service import RoleService


def _api_error(code: str) -> APIError:
    return APIError({"code": code, "message": f"error {code}", "details": None, "hint": None})


@pytest.mark.parametrize(
    "exc,expected",
    [
        (_api_error("23505"), Conflict),
        (_api_error("23503"), NotFound),
        (_api_error("23514"), InvalidInput),
        (_api_error("22P02"), InvalidInput),
        (_api_error("57014"), StoreTimeout),
        (_api_error("XX000"), StoreUnavailable),
        (httpx.ReadTimeout("slow"), StoreTimeout),
        (httpx.ConnectError("refused"), StoreUnavailable),
    ],
)
def test_translate_store_error(exc, expected) -> None:
    assert isinstance(translate_store_error(exc), expected)


def test_store_call_passes_gateway_errors_through() -> None:
    @store_call
    def boom():
        raise NotFound("nope")

    with pytest.raises(NotFound):
        boom()


def test_service_surfaces_timeouts(seeded) -> None:
    seeded.store.fail_next("roles", "select", httpx.ReadTimeout("slow"))
    with pytest.raises(StoreTimeout):
        RoleService(seeded).list_roles()


def test_service_surfaces_unreachable_store(seeded) -> None:
    seeded.store.fail_next("roles", "insert", httpx.ConnectError("refused"))
    with pytest.raises(StoreUnavailable):
        RoleService(seeded).create_role(RoleCreate(name="auditor"))


def test_unique_violation_from_a_race_is_a_conflict(seeded) -> None:
    seeded.store.fail_next("roles", "insert", _api_error("23505"))
    with pytest.raises(Conflict):
        RoleService(seeded).create_role(RoleCreate(name="auditor"))


@pytest.mark.parametrize("failure,expected", [
    (httpx.ConnectError("refused"), StoreUnavailable),
    (httpx.ReadTimeout("slow"), StoreTimeout),
])
def test_auth_outage_is_not_reported_as_bad_token(fake, failure, expected) -> None:
    fake.auth.outage = failure
    with pytest.raises(expected):
        AuthService(fake).get_current_user("token-alice")
    with pytest.raises(expected):
        AuthService(fake).login(LoginRequest(email="alice@example.com", password="whatever"))


def test_auth_rejection_is_unauthorized(fake) -> None:
    with pytest.raises(Unauthorized):
        AuthService(fake).get_current_user("not-a-token")
    with pytest.raises(Unauthorized):
        AuthService(fake).login(LoginRequest(email="alice@example.com", password="whatever"))


def test_auth_cache_evicts_expired_entries_when_full(fake, monkeypatch) -> None:
    monkeypatch.setattr(auth_service, "_AUTH_CACHE_MAX_SIZE", 2)
    for i in range(3):
        fake.auth.add_user(f"token-{i}", f"id-{i}", f"u{i}@example.com")
    service = AuthService(fake)
    service.get_current_user("token-0")
    service.get_current_user("token-1")
    for key, (user_data, _) in list(auth_service._AUTH_USER_CACHE.items()):
        auth_service._AUTH_USER_CACHE[key] = (user_data, 0.0)

    service.get_current_user("token-2")
    calls = fake.auth.get_user_calls
    service.get_current_user("token-2")

    assert fake.auth.get_user_calls == calls
    assert len(auth_service._AUTH_USER_CACHE) == 1
