from fastapi import APIRouter, Depends
from app.modules.auth.schemas import LoginRequest, TokenResponse, MeResponse, CheckAdminResponse
from app.modules.auth.service import AuthService
from app.core.dependencies import get_auth_service, get_current_token, get_current_principal
from app.core.permissions import Principal, is_admin, is_super_admin

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return service.login(login_data)


@router.post("/logout", status_code=200)
async def logout(
    token: str = Depends(get_current_token),
    service: AuthService = Depends(get_auth_service)
):
    """Logout and invalidate token"""
    service.logout(token)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=MeResponse)
async def get_me(principal: Principal = Depends(get_current_principal)):
    """Current principal with roles and permissions (for frontend UI)."""
    return principal.to_dict()


@router.get("/check-admin", response_model=CheckAdminResponse)
async def check_admin(principal: Principal = Depends(get_current_principal)):
    return CheckAdminResponse(is_admin=is_admin(principal), is_super_admin=is_super_admin(principal))
