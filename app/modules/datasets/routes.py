from fastapi import APIRouter, Depends
from app.core.dependencies import get_access_cache, get_current_principal, require_permission
from app.core.exceptions import Forbidden
from app.core.permissions import Principal
from app.database.supabase_client import get_supabase
from app.modules.access.schemas import AccessAction, AccessCheckResponse, ResourceType
from app.modules.access.service import AccessResolver
from app.modules.datasets.schemas import DatasetCreate, DatasetUpdate, DatasetResponse, DatasetTreeResponse
from app.modules.datasets.service import DatasetService
from supabase import Client
from typing import Any, Dict, List, Optional

router = APIRouter(prefix="/datasets", tags=["datasets"])


def get_access_resolver(
    supabase: Client = Depends(get_supabase),
    cache: Dict[str, Any] = Depends(get_access_cache)
) -> AccessResolver:
    return AccessResolver(supabase, cache)


def get_dataset_service(
    supabase: Client = Depends(get_supabase),
    resolver: AccessResolver = Depends(get_access_resolver)
) -> DatasetService:
    return DatasetService(supabase, resolver)


def _require_dataset_access(resolver: AccessResolver, principal: Principal, dataset_id: str, action: AccessAction):
    if not resolver.can_access_dataset(principal, dataset_id, action):
        raise Forbidden(f"You do not have {action.value} access to this dataset")


@router.get("", response_model=List[DatasetResponse])
async def list_datasets(
    parent_id: Optional[str] = None,
    principal: Principal = Depends(get_current_principal),
    service: DatasetService = Depends(get_dataset_service)
):
    """Datasets under parent_id (roots when omitted) the caller may view"""
    return service.list_datasets(principal, parent_id=parent_id)


@router.post("", response_model=DatasetResponse, status_code=201)
async def create_dataset(
    dataset_data: DatasetCreate,
    principal: Principal = Depends(require_permission("datasets.create")),
    service: DatasetService = Depends(get_dataset_service)
):
    return service.create_dataset(principal, dataset_data)


@router.get("/{dataset_id}", response_model=DatasetResponse)
async def get_dataset(
    dataset_id: str,
    principal: Principal = Depends(get_current_principal),
    service: DatasetService = Depends(get_dataset_service),
    resolver: AccessResolver = Depends(get_access_resolver)
):
    _require_dataset_access(resolver, principal, dataset_id, AccessAction.VIEW)
    return service.get_dataset(dataset_id)


@router.get("/{dataset_id}/tree", response_model=DatasetTreeResponse)
async def get_dataset_tree(
    dataset_id: str,
    principal: Principal = Depends(get_current_principal),
    service: DatasetService = Depends(get_dataset_service),
    resolver: AccessResolver = Depends(get_access_resolver)
):
    """Dataset with nested children and documents, limited to what the caller may view"""
    _require_dataset_access(resolver, principal, dataset_id, AccessAction.VIEW)
    return service.get_dataset_tree(principal, dataset_id)


@router.put("/{dataset_id}", response_model=DatasetResponse)
async def update_dataset(
    dataset_id: str,
    dataset_data: DatasetUpdate,
    principal: Principal = Depends(get_current_principal),
    service: DatasetService = Depends(get_dataset_service),
    resolver: AccessResolver = Depends(get_access_resolver)
):
    _require_dataset_access(resolver, principal, dataset_id, AccessAction.EDIT)
    if dataset_data.parent_id:
        _require_dataset_access(resolver, principal, dataset_data.parent_id, AccessAction.EDIT)
    return service.update_dataset(dataset_id, dataset_data)


@router.delete("/{dataset_id}", status_code=204)
async def delete_dataset(
    dataset_id: str,
    principal: Principal = Depends(get_current_principal),
    service: DatasetService = Depends(get_dataset_service),
    resolver: AccessResolver = Depends(get_access_resolver)
):
    """Delete an empty dataset (409 while it has children or documents)"""
    _require_dataset_access(resolver, principal, dataset_id, AccessAction.DELETE)
    service.delete_dataset(dataset_id)
    return None


@router.get("/{dataset_id}/access", response_model=AccessCheckResponse)
async def check_dataset_access(
    dataset_id: str,
    action: AccessAction = AccessAction.VIEW,
    principal: Principal = Depends(get_current_principal),
    resolver: AccessResolver = Depends(get_access_resolver)
):
    return AccessCheckResponse(
        resource_type=ResourceType.DATASET,
        resource_id=dataset_id,
        action=action,
        allowed=resolver.can_access_dataset(principal, dataset_id, action)
    )
