import functools
import logging

import httpx
from postgrest.exceptions import APIError
from supabase import create_client, Client, ClientOptions
from app.config.settings import settings
from app.core.exceptions import (
    GatewayError, Conflict, NotFound, InvalidInput, StoreTimeout, StoreUnavailable
)

logger = logging.getLogger(__name__)

# PostgreSQL error codes surfaced by PostgREST
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
CHECK_VIOLATION = "23514"
INVALID_TEXT_REPRESENTATION = "22P02"
QUERY_CANCELED = "57014"


def _client_options() -> ClientOptions:
    return ClientOptions(postgrest_client_timeout=settings.store_timeout_seconds)


class SupabaseClient:
    _client: Client = None
    _service_client: Client = None

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            cls._client = create_client(settings.supabase_url, settings.supabase_key, options=_client_options())
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        """Client with service_role key; bypasses RLS. Use in background jobs."""
        if cls._service_client is None and settings.supabase_service_role_key:
            cls._service_client = create_client(
                settings.supabase_url, settings.supabase_service_role_key, options=_client_options()
            )
        return cls._service_client or cls.get_client()


def get_supabase() -> Client:
    return SupabaseClient.get_client()


def translate_store_error(exc: Exception) -> GatewayError:
    """Map a PostgREST / transport failure onto the gateway error taxonomy"""
    if isinstance(exc, httpx.TimeoutException):
        return StoreTimeout("Store request timed out")
    if isinstance(exc, httpx.HTTPError):
        return StoreUnavailable(f"Store unavailable: {exc.__class__.__name__}")
    if isinstance(exc, APIError):
        code = str(exc.code or "")
        message = exc.message or str(exc)
        if code == UNIQUE_VIOLATION:
            return Conflict(message)
        if code == FOREIGN_KEY_VIOLATION:
            return NotFound(message)
        if code in (CHECK_VIOLATION, INVALID_TEXT_REPRESENTATION):
            return InvalidInput(message)
        if code == QUERY_CANCELED:
            return StoreTimeout(message)
        return StoreUnavailable(message)
    raise TypeError(f"Not a store error: {exc!r}")


def store_call(func):
    """Decorator for service methods: gateway errors pass through, store errors are translated"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except GatewayError:
            raise
        except (httpx.HTTPError, APIError) as e:
            translated = translate_store_error(e)
            logger.error(f"{func.__qualname__} failed: {translated.error}: {e}")
            raise translated from e
    return wrapper
