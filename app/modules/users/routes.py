from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.access.schemas import (
    GrantUpsert, ResourceType, DatasetGrantResponse, DocumentGrantResponse,
    UserGrantsResponse, BulkGrantUpdate, BulkGrantResponse
)
from app.modules.access.service import GrantService
from app.modules.roles.schemas import RoleResponse
from app.modules.users.schemas import (
    UserCreate, UserUpdate, UserResponse, UserWithRolesResponse,
    UserRoleAssign, UserRolesReplace, UserRoleResponse
)
from app.modules.users.service import UserService
from app.core.dependencies import require_admin, require_permission
from app.core.permissions import Principal
from supabase import Client
from typing import List, Optional, Union

router = APIRouter(prefix="/admin/users", tags=["admin-users"])


def get_user_service(supabase: Client = Depends(get_supabase)) -> UserService:
    return UserService(supabase)


def get_grant_service(supabase: Client = Depends(get_supabase)) -> GrantService:
    return GrantService(supabase)


@router.get("", response_model=List[UserResponse])
async def list_users(
    query: Optional[str] = None,
    limit: int = 10,
    offset: int = 0,
    principal: Principal = Depends(require_permission("users.view")),
    service: UserService = Depends(get_user_service)
):
    """List users newest first, optionally searching email, asgl_id and name"""
    return service.list_users(query=query, limit=limit, offset=offset)


@router.post("", response_model=UserWithRolesResponse, status_code=201)
async def create_user(
    user_data: UserCreate,
    principal: Principal = Depends(require_permission("users.create")),
    service: UserService = Depends(get_user_service)
):
    return service.create_user(user_data, actor=principal)


@router.get("/{user_id}", response_model=UserWithRolesResponse)
async def get_user(
    user_id: str,
    principal: Principal = Depends(require_permission("users.view")),
    service: UserService = Depends(get_user_service)
):
    return service.get_user_with_roles(user_id)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    principal: Principal = Depends(require_permission("users.edit")),
    service: UserService = Depends(get_user_service)
):
    return service.update_user(user_id, user_data, actor=principal)


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: str,
    principal: Principal = Depends(require_permission("users.delete")),
    service: UserService = Depends(get_user_service)
):
    """Delete user with memberships, grants and credit history"""
    service.delete_user(user_id)
    return None


# Role membership
@router.get("/{user_id}/roles", response_model=List[RoleResponse])
async def get_user_roles(
    user_id: str,
    principal: Principal = Depends(require_permission("users.view")),
    service: UserService = Depends(get_user_service)
):
    service.get_user_by_id(user_id)
    return service.get_roles_for_principal(user_id)


@router.post("/{user_id}/roles", response_model=UserRoleResponse, status_code=201)
async def assign_role(
    user_id: str,
    role_data: UserRoleAssign,
    principal: Principal = Depends(require_permission("users.assign_roles")),
    service: UserService = Depends(get_user_service)
):
    return service.assign_role(user_id, role_data.role_id)


@router.put("/{user_id}/roles", response_model=List[RoleResponse])
async def replace_roles(
    user_id: str,
    roles_data: UserRolesReplace,
    principal: Principal = Depends(require_permission("users.assign_roles")),
    service: UserService = Depends(get_user_service)
):
    """Replace the user's roles with exactly the given set"""
    return service.replace_roles(user_id, roles_data.role_ids)


@router.delete("/{user_id}/roles/{role_id}", status_code=204)
async def remove_role(
    user_id: str,
    role_id: str,
    principal: Principal = Depends(require_permission("users.assign_roles")),
    service: UserService = Depends(get_user_service)
):
    service.remove_role(user_id, role_id)
    return None


# Dataset / document grants
@router.get("/{user_id}/access", response_model=UserGrantsResponse)
async def get_user_access(
    user_id: str,
    principal: Principal = Depends(require_admin),
    service: GrantService = Depends(get_grant_service)
):
    return service.get_user_grants(user_id)


@router.post("/{user_id}/access", response_model=Union[DatasetGrantResponse, DocumentGrantResponse])
async def grant_access(
    user_id: str,
    grant: GrantUpsert,
    principal: Principal = Depends(require_admin),
    service: GrantService = Depends(get_grant_service)
):
    """Create or overwrite one grant"""
    return service.upsert_grant(user_id, grant)


@router.put("/{user_id}/access", response_model=BulkGrantResponse)
async def bulk_update_access(
    user_id: str,
    bulk_data: BulkGrantUpdate,
    principal: Principal = Depends(require_admin),
    service: GrantService = Depends(get_grant_service)
):
    return service.bulk_update_grants(user_id, bulk_data)


@router.delete("/{user_id}/access/{resource_type}/{resource_id}", status_code=204)
async def revoke_access(
    user_id: str,
    resource_type: ResourceType,
    resource_id: str,
    principal: Principal = Depends(require_admin),
    service: GrantService = Depends(get_grant_service)
):
    service.revoke_grant(user_id, resource_type, resource_id)
    return None
