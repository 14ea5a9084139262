import hashlib
import logging
import time
import httpx
from supabase import AuthError, AuthRetryableError, Client
from app.core.exceptions import GatewayError, StoreUnavailable, Unauthorized
from app.database.supabase_client import translate_store_error
from app.modules.auth.schemas import LoginRequest, TokenResponse
from typing import Dict, Any

logger = logging.getLogger(__name__)

# In-memory cache for get_current_user to reduce Supabase auth calls (e.g. many parallel requests with same token)
_AUTH_USER_CACHE: Dict[str, tuple] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500


def clear_auth_cache() -> None:
    _AUTH_USER_CACHE.clear()


def _prune_auth_cache(now: float) -> None:
    for key in [k for k, (_, expiry) in _AUTH_USER_CACHE.items() if expiry <= now]:
        _AUTH_USER_CACHE.pop(key, None)


def _auth_outage(e: Exception) -> GatewayError:
    """Transport failures talking to Supabase Auth are outages, not bad credentials"""
    if isinstance(e, httpx.HTTPError):
        return translate_store_error(e)
    return StoreUnavailable(f"Auth service unavailable: {e}")


class AuthService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def login(self, login_data: LoginRequest) -> TokenResponse:
        """Authenticate user using Supabase Auth"""
        try:
            auth_response = self.supabase.auth.sign_in_with_password({
                "email": login_data.email,
                "password": login_data.password
            })
        except (httpx.HTTPError, AuthRetryableError) as e:
            logger.error(f"Auth service failed during login: {e}")
            raise _auth_outage(e) from e
        except AuthError as e:
            logger.info(f"Login rejected for {login_data.email}: {e}")
            raise Unauthorized("Invalid email or password")

        if not auth_response.user or not auth_response.session:
            raise Unauthorized("Invalid email or password")

        return TokenResponse(
            access_token=auth_response.session.access_token,
            token_type="bearer",
            user_id=auth_response.user.id,
            email=auth_response.user.email or login_data.email
        )

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Get current user details from Supabase Auth token. Uses short TTL cache to reduce auth API calls."""
        cache_key = hashlib.sha256(token.encode()).hexdigest()
        now = time.monotonic()
        if cache_key in _AUTH_USER_CACHE:
            user_data, expiry = _AUTH_USER_CACHE[cache_key]
            if now < expiry:
                return user_data
            del _AUTH_USER_CACHE[cache_key]

        try:
            user_response = self.supabase.auth.get_user(jwt=token)
        except (httpx.HTTPError, AuthRetryableError) as e:
            logger.error(f"Auth service failed during token check: {e}")
            raise _auth_outage(e) from e
        except AuthError as e:
            logger.info(f"Token rejected: {e}")
            raise Unauthorized("Invalid or expired token")

        if not user_response or not user_response.user:
            raise Unauthorized("Invalid or expired token")

        user = user_response.user
        user_data = {
            "id": user.id,
            "email": user.email,
            "user_metadata": user.user_metadata or {},
            "app_metadata": user.app_metadata or {},
        }
        if len(_AUTH_USER_CACHE) >= _AUTH_CACHE_MAX_SIZE:
            _prune_auth_cache(now)
        if len(_AUTH_USER_CACHE) < _AUTH_CACHE_MAX_SIZE:
            _AUTH_USER_CACHE[cache_key] = (user_data, now + _AUTH_CACHE_TTL_SEC)
        return user_data

    def logout(self, token: str) -> bool:
        """Logout user using Supabase Auth"""
        # Supabase tokens are stateless JWTs; dropping the cached lookup is all the server holds
        _AUTH_USER_CACHE.pop(hashlib.sha256(token.encode()).hexdigest(), None)
        try:
            self.supabase.auth.sign_out()
            return True
        except Exception as e:
            logger.warning(f"Supabase sign_out failed: {e}")
            return False
