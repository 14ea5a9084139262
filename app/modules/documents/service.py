import logging
from datetime import datetime, timezone
from supabase import Client
from app.core.exceptions import Forbidden, NotFound
from app.core.permissions import Principal
from app.database.supabase_client import store_call
from app.modules.access.schemas import AccessAction, ResourceType
from app.modules.access.service import AccessResolver, GrantService
from app.modules.documents.schemas import DocumentCreate, DocumentUpdate, DocumentResponse
from typing import List, Optional

logger = logging.getLogger(__name__)


class DocumentService:
    def __init__(self, supabase: Client, resolver: Optional[AccessResolver] = None):
        self.supabase = supabase
        self.resolver = resolver or AccessResolver(supabase)

    @store_call
    def get_document(self, document_id: str) -> DocumentResponse:
        result = self.supabase.table("documents")\
            .select("*")\
            .eq("id", document_id)\
            .limit(1)\
            .execute()

        if not result.data:
            raise NotFound("Document not found")

        return DocumentResponse(**result.data[0])

    @store_call
    def list_documents(self, principal: Principal, dataset_id: str) -> List[DocumentResponse]:
        return [DocumentResponse(**d) for d in self.resolver.list_accessible_documents(principal, dataset_id)]

    @store_call
    def create_document(self, principal: Principal, document_data: DocumentCreate) -> DocumentResponse:
        """Register a document under a dataset the caller can edit; the creator gets full access"""
        if not self.resolver.can_access_dataset(principal, document_data.dataset_id, AccessAction.EDIT):
            raise Forbidden("You do not have edit access to this dataset")

        result = self.supabase.table("documents").insert({
            "dataset_id": document_data.dataset_id,
            "name": document_data.name,
            "type": document_data.type,
            "size": document_data.size,
            "remote_id": document_data.remote_id,
            "owner_id": principal.id
        }).execute()
        document = result.data[0]

        GrantService(self.supabase).grant_full_access(principal.id, ResourceType.DOCUMENT, document["id"])
        logger.info(f"Document {document['id']} created in dataset {document_data.dataset_id} by {principal.asgl_id}")
        return DocumentResponse(**document)

    @store_call
    def update_document(self, document_id: str, document_data: DocumentUpdate) -> DocumentResponse:
        update_data = {"updated_at": datetime.now(timezone.utc).isoformat()}
        if document_data.name is not None:
            update_data["name"] = document_data.name
        if document_data.type is not None:
            update_data["type"] = document_data.type
        if document_data.remote_id is not None:
            update_data["remote_id"] = document_data.remote_id

        result = self.supabase.table("documents")\
            .update(update_data)\
            .eq("id", document_id)\
            .execute()

        if not result.data:
            raise NotFound("Document not found")

        return DocumentResponse(**result.data[0])

    @store_call
    def delete_document(self, document_id: str) -> bool:
        """Delete document and its grants"""
        self.get_document(document_id)

        self.supabase.table("document_access")\
            .delete()\
            .eq("document_id", document_id)\
            .execute()

        result = self.supabase.table("documents")\
            .delete()\
            .eq("id", document_id)\
            .execute()

        logger.info(f"Document {document_id} deleted")
        return len(result.data) > 0
