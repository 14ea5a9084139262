from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.roles.schemas import (
    PermissionCreate, PermissionUpdate, PermissionResponse,
    RoleCreate, RoleUpdate, RoleResponse, RoleWithPermissionsResponse,
    RolePermissionAssign, RolePermissionResponse,
    BulkPermissionAssign, BulkPermissionAssignResponse, BulkPermissionUpdate,
    RoleStatsResponse, InitializeDefaultsResponse
)
from app.modules.roles.service import RoleService, PermissionService
from app.core.dependencies import require_permission, require_super_admin
from app.core.permissions import Principal
from supabase import Client
from typing import List, Optional

router = APIRouter(prefix="/roles", tags=["roles"])


def get_role_service(supabase: Client = Depends(get_supabase)) -> RoleService:
    return RoleService(supabase)


def get_permission_service(supabase: Client = Depends(get_supabase)) -> PermissionService:
    return PermissionService(supabase)


# Permission endpoints
@router.post("/permissions", response_model=PermissionResponse, status_code=201)
async def create_permission(
    permission_data: PermissionCreate,
    principal: Principal = Depends(require_permission("roles.create")),
    service: PermissionService = Depends(get_permission_service)
):
    """Create a new permission"""
    return service.create_permission(permission_data)


@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    query: Optional[str] = None,
    resource: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    principal: Principal = Depends(require_permission("roles.view")),
    service: PermissionService = Depends(get_permission_service)
):
    return service.list_permissions(query=query, resource=resource, limit=limit, offset=offset)


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: str,
    principal: Principal = Depends(require_permission("roles.view")),
    service: PermissionService = Depends(get_permission_service)
):
    return service.get_permission_by_id(permission_id)


@router.put("/permissions/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: str,
    permission_data: PermissionUpdate,
    principal: Principal = Depends(require_permission("roles.edit")),
    service: PermissionService = Depends(get_permission_service)
):
    return service.update_permission(permission_id, permission_data)


@router.delete("/permissions/{permission_id}", status_code=204)
async def delete_permission(
    permission_id: str,
    principal: Principal = Depends(require_permission("roles.delete")),
    service: PermissionService = Depends(get_permission_service)
):
    """Delete permission and detach it from every role"""
    service.delete_permission(permission_id)
    return None


# Role endpoints
@router.get("/stats", response_model=RoleStatsResponse)
async def get_role_stats(
    principal: Principal = Depends(require_permission("roles.view")),
    service: RoleService = Depends(get_role_service)
):
    return service.get_role_stats()


@router.post("/initialize", response_model=InitializeDefaultsResponse)
async def initialize_defaults(
    principal: Principal = Depends(require_super_admin),
    service: RoleService = Depends(get_role_service)
):
    """Seed default permissions and roles (superadmin only)"""
    return service.initialize_defaults()


@router.post("", response_model=RoleResponse, status_code=201)
async def create_role(
    role_data: RoleCreate,
    principal: Principal = Depends(require_permission("roles.create")),
    service: RoleService = Depends(get_role_service)
):
    """Create a new role"""
    return service.create_role(role_data)


@router.get("", response_model=List[RoleResponse])
async def list_roles(
    query: Optional[str] = None,
    limit: int = 10,
    offset: int = 0,
    principal: Principal = Depends(require_permission("roles.view")),
    service: RoleService = Depends(get_role_service)
):
    return service.list_roles(query=query, limit=limit, offset=offset)


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: str,
    principal: Principal = Depends(require_permission("roles.view")),
    service: RoleService = Depends(get_role_service)
):
    return service.get_role_by_id(role_id)


@router.get("/{role_id}/with-permissions", response_model=RoleWithPermissionsResponse)
async def get_role_with_permissions(
    role_id: str,
    principal: Principal = Depends(require_permission("roles.view")),
    service: RoleService = Depends(get_role_service)
):
    """Get role with all associated permissions and its user count"""
    return service.get_role_with_permissions(role_id)


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_data: RoleUpdate,
    principal: Principal = Depends(require_permission("roles.edit")),
    service: RoleService = Depends(get_role_service)
):
    return service.update_role(role_id, role_data)


@router.delete("/{role_id}", status_code=204)
async def delete_role(
    role_id: str,
    principal: Principal = Depends(require_permission("roles.delete")),
    service: RoleService = Depends(get_role_service)
):
    """Delete role (409 while it is assigned to any user)"""
    service.delete_role(role_id)
    return None


# Role-Permission association endpoints
@router.post("/{role_id}/permissions", response_model=RolePermissionResponse, status_code=201)
async def assign_permission_to_role(
    role_id: str,
    permission_assign: RolePermissionAssign,
    principal: Principal = Depends(require_permission("roles.assign_permissions")),
    service: RoleService = Depends(get_role_service)
):
    return service.assign_permission_to_role(role_id, permission_assign.permission_id)


@router.get("/{role_id}/permissions", response_model=List[PermissionResponse])
async def get_role_permissions(
    role_id: str,
    principal: Principal = Depends(require_permission("roles.view")),
    service: RoleService = Depends(get_role_service)
):
    return service.get_role_permissions(role_id)


@router.delete("/{role_id}/permissions/{permission_id}", status_code=204)
async def remove_permission_from_role(
    role_id: str,
    permission_id: str,
    principal: Principal = Depends(require_permission("roles.assign_permissions")),
    service: RoleService = Depends(get_role_service)
):
    service.remove_permission_from_role(role_id, permission_id)
    return None


@router.post("/{role_id}/permissions/bulk-assign", response_model=BulkPermissionAssignResponse, status_code=200)
async def bulk_assign_permissions_to_role(
    role_id: str,
    bulk_data: BulkPermissionAssign,
    principal: Principal = Depends(require_permission("roles.assign_permissions")),
    service: RoleService = Depends(get_role_service)
):
    """Bulk assign multiple permissions to a role"""
    return service.bulk_assign_permissions_to_role(role_id, bulk_data.permission_ids)


@router.put("/{role_id}/permissions/bulk-update", response_model=BulkPermissionAssignResponse, status_code=200)
async def bulk_update_role_permissions(
    role_id: str,
    bulk_data: BulkPermissionUpdate,
    principal: Principal = Depends(require_permission("roles.assign_permissions")),
    service: RoleService = Depends(get_role_service)
):
    """Replace all permissions for a role"""
    return service.bulk_update_role_permissions(role_id, bulk_data.permission_ids)
