from fastapi import APIRouter, Depends
from app.core.dependencies import get_current_principal, require_permission
from app.core.exceptions import Forbidden
from app.core.permissions import Principal
from app.database.supabase_client import get_supabase
from app.modules.access.schemas import AccessAction, AccessCheckResponse, ResourceType
from app.modules.access.service import AccessResolver
from app.modules.datasets.routes import get_access_resolver
from app.modules.documents.schemas import DocumentCreate, DocumentUpdate, DocumentResponse
from app.modules.documents.service import DocumentService
from supabase import Client
from typing import List

router = APIRouter(prefix="/documents", tags=["documents"])


def get_document_service(
    supabase: Client = Depends(get_supabase),
    resolver: AccessResolver = Depends(get_access_resolver)
) -> DocumentService:
    return DocumentService(supabase, resolver)


def _require_document_access(resolver: AccessResolver, principal: Principal, document_id: str, action: AccessAction):
    if not resolver.can_access_document(principal, document_id, action):
        raise Forbidden(f"You do not have {action.value} access to this document")


@router.get("", response_model=List[DocumentResponse])
async def list_documents(
    dataset_id: str,
    principal: Principal = Depends(get_current_principal),
    service: DocumentService = Depends(get_document_service)
):
    """Documents of a dataset the caller may view"""
    return service.list_documents(principal, dataset_id)


@router.post("", response_model=DocumentResponse, status_code=201)
async def create_document(
    document_data: DocumentCreate,
    principal: Principal = Depends(require_permission("documents.create")),
    service: DocumentService = Depends(get_document_service)
):
    return service.create_document(principal, document_data)


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    principal: Principal = Depends(get_current_principal),
    service: DocumentService = Depends(get_document_service),
    resolver: AccessResolver = Depends(get_access_resolver)
):
    _require_document_access(resolver, principal, document_id, AccessAction.VIEW)
    return service.get_document(document_id)


@router.put("/{document_id}", response_model=DocumentResponse)
async def update_document(
    document_id: str,
    document_data: DocumentUpdate,
    principal: Principal = Depends(get_current_principal),
    service: DocumentService = Depends(get_document_service),
    resolver: AccessResolver = Depends(get_access_resolver)
):
    _require_document_access(resolver, principal, document_id, AccessAction.EDIT)
    return service.update_document(document_id, document_data)


@router.delete("/{document_id}", status_code=204)
async def delete_document(
    document_id: str,
    principal: Principal = Depends(get_current_principal),
    service: DocumentService = Depends(get_document_service),
    resolver: AccessResolver = Depends(get_access_resolver)
):
    _require_document_access(resolver, principal, document_id, AccessAction.DELETE)
    service.delete_document(document_id)
    return None


@router.get("/{document_id}/access", response_model=AccessCheckResponse)
async def check_document_access(
    document_id: str,
    action: AccessAction = AccessAction.VIEW,
    principal: Principal = Depends(get_current_principal),
    resolver: AccessResolver = Depends(get_access_resolver)
):
    return AccessCheckResponse(
        resource_type=ResourceType.DOCUMENT,
        resource_id=document_id,
        action=action,
        allowed=resolver.can_access_document(principal, document_id, action)
    )
