"""
Core dependencies for route protection and permission checking
"""

from fastapi import Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.core.exceptions import Forbidden, Unauthorized
from app.core.permissions import Principal, has_permission, is_admin, is_super_admin
from app.database.supabase_client import get_supabase
from app.modules.auth.service import AuthService
from app.modules.users.service import UserService
from supabase import Client
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _get_request_cache(request: Request) -> Dict[str, Any]:
    """Return request-scoped cache for access data (principal, dataset chains, grant rows)."""
    if not hasattr(request.state, "access_cache"):
        request.state.access_cache = {}
    return request.state.access_cache


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> str:
    """Extract bearer token from Authorization header"""
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Missing bearer token")
    return credentials.credentials


def get_current_principal(
    request: Request,
    token: str = Depends(get_current_token),
    auth_service: AuthService = Depends(get_auth_service),
    supabase: Client = Depends(get_supabase)
) -> Principal:
    """Resolve the bearer token to a Principal once per request"""
    cache = _get_request_cache(request)
    if "principal" in cache:
        return cache["principal"]
    auth_user = auth_service.get_current_user(token)
    principal = UserService(supabase).resolve_auth_user(auth_user)
    cache["principal"] = principal
    return principal


def require_permission(required_permission: str):
    """Factory function to create permission check dependency"""
    def check_permission(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not has_permission(principal, required_permission):
            raise Forbidden(f"Insufficient permissions. Required: {required_permission}")
        return principal
    return check_permission


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not is_admin(principal):
        raise Forbidden("Admin access required")
    return principal


def require_super_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not is_super_admin(principal):
        raise Forbidden("Superadmin access required")
    return principal


def get_access_cache(request: Request) -> Dict[str, Any]:
    """Dependency that returns the request-scoped access cache."""
    return _get_request_cache(request)
