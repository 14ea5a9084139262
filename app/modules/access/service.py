"""
Dataset / document access decisions and grant administration.

Decision order for a principal and an action:
1. superadmin: always allowed
2. admin: view and edit allowed; delete only on owned resources or through grants
3. datasets: the nearest node on the path to the root that has a grant row decides
4. documents: the document's own grant row decides; without one, view falls back
   to the parent dataset
"""

import logging
from datetime import datetime, timezone
from supabase import Client
from app.core.exceptions import NotFound, Unauthorized
from app.core.permissions import Principal, is_admin, is_super_admin
from app.database.supabase_client import store_call
from app.modules.access.schemas import (
    AccessAction, ResourceType, GrantFlags, GrantUpsert,
    DatasetGrantResponse, DocumentGrantResponse, UserGrantsResponse,
    BulkGrantUpdate, BulkGrantResponse
)
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

FULL_ACCESS = GrantFlags(can_view=True, can_edit=True, can_delete=True)

# resource type -> (grant table, resource table, grant key column)
_GRANT_TABLES = {
    ResourceType.DATASET: ("dataset_access", "datasets", "dataset_id"),
    ResourceType.DOCUMENT: ("document_access", "documents", "document_id"),
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AccessResolver:
    """Read-only resolver. cache, when given, lives for one request."""

    def __init__(self, supabase: Client, cache: Optional[Dict[str, Any]] = None):
        self.supabase = supabase
        self.cache = cache if cache is not None else {}

    def _fetch_row(self, table: str, resource_id: str) -> Optional[Dict[str, Any]]:
        rows = self.cache.setdefault(table, {})
        if resource_id not in rows:
            result = self.supabase.table(table)\
                .select("*")\
                .eq("id", resource_id)\
                .limit(1)\
                .execute()
            rows[resource_id] = result.data[0] if result.data else None
        return rows[resource_id]

    def _get_dataset(self, dataset_id: str) -> Dict[str, Any]:
        dataset = self._fetch_row("datasets", dataset_id)
        if dataset is None:
            raise NotFound("Dataset not found")
        return dataset

    def _get_document(self, document_id: str) -> Dict[str, Any]:
        document = self._fetch_row("documents", document_id)
        if document is None:
            raise NotFound("Document not found")
        return document

    def _ancestor_chain(self, dataset: Dict[str, Any]) -> Optional[List[str]]:
        """Ids from the dataset up to its root, nearest first. None when the parent links loop."""
        chain = [dataset["id"]]
        visited = {dataset["id"]}
        parent_id = dataset.get("parent_id")
        while parent_id:
            if parent_id in visited:
                logger.warning(f"Dataset parent cycle detected at {parent_id} (starting from {dataset['id']})")
                return None
            visited.add(parent_id)
            parent = self._fetch_row("datasets", parent_id)
            if parent is None:
                break
            chain.append(parent_id)
            parent_id = parent.get("parent_id")
        return chain

    def _grant_rows(self, principal: Principal, resource_type: ResourceType, ids: List[str]) -> Dict[str, Dict[str, Any]]:
        grant_table, _, key = _GRANT_TABLES[resource_type]
        grants = self.cache.setdefault(f"{grant_table}:{principal.id}", {})
        missing = [rid for rid in ids if rid not in grants]
        if missing:
            result = self.supabase.table(grant_table)\
                .select("*")\
                .eq("user_id", principal.id)\
                .in_(key, missing)\
                .execute()
            found = {row[key]: row for row in result.data or []}
            for rid in missing:
                grants[rid] = found.get(rid)
        return {rid: grants[rid] for rid in ids if grants[rid] is not None}

    @staticmethod
    def _admin_decision(principal: Principal, resource: Dict[str, Any], action: AccessAction) -> Optional[bool]:
        """True when the role alone allows the action, None when grants must decide"""
        if is_super_admin(principal):
            return True
        if is_admin(principal):
            if action in (AccessAction.VIEW, AccessAction.EDIT):
                return True
            if resource.get("owner_id") == principal.id:
                return True
        return None

    def _resolve_dataset(self, principal: Principal, dataset: Dict[str, Any], action: AccessAction) -> bool:
        decision = self._admin_decision(principal, dataset, action)
        if decision is not None:
            return decision

        chain = self._ancestor_chain(dataset)
        if chain is None:
            return False

        grants = self._grant_rows(principal, ResourceType.DATASET, chain)
        for dataset_id in chain:
            if dataset_id in grants:
                return bool(grants[dataset_id][action.flag])
        return False

    @store_call
    def can_access_dataset(self, principal: Optional[Principal], dataset_id: str, action: AccessAction) -> bool:
        if principal is None:
            raise Unauthorized("Authentication required")
        return self._resolve_dataset(principal, self._get_dataset(dataset_id), AccessAction(action))

    @store_call
    def can_access_document(self, principal: Optional[Principal], document_id: str, action: AccessAction) -> bool:
        if principal is None:
            raise Unauthorized("Authentication required")
        action = AccessAction(action)
        document = self._get_document(document_id)

        decision = self._admin_decision(principal, document, action)
        if decision is not None:
            return decision

        grants = self._grant_rows(principal, ResourceType.DOCUMENT, [document_id])
        if document_id in grants:
            return bool(grants[document_id][action.flag])

        # Inheritance for documents is view-only
        if action is AccessAction.VIEW and document.get("dataset_id"):
            return self._resolve_dataset(principal, self._get_dataset(document["dataset_id"]), AccessAction.VIEW)
        return False

    @store_call
    def list_accessible_datasets(self, principal: Principal, parent_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Datasets directly under parent_id (roots when None) the principal may view"""
        query = self.supabase.table("datasets").select("*")
        if parent_id:
            query = query.eq("parent_id", parent_id)
        else:
            query = query.is_("parent_id", "null")
        result = query.order("name").execute()

        rows = self.cache.setdefault("datasets", {})
        datasets = result.data or []
        for dataset in datasets:
            rows[dataset["id"]] = dataset
        return [d for d in datasets if self._resolve_dataset(principal, d, AccessAction.VIEW)]

    @store_call
    def list_accessible_documents(self, principal: Principal, dataset_id: str) -> List[Dict[str, Any]]:
        self._get_dataset(dataset_id)
        result = self.supabase.table("documents")\
            .select("*")\
            .eq("dataset_id", dataset_id)\
            .order("name")\
            .execute()

        documents = result.data or []
        rows = self.cache.setdefault("documents", {})
        for document in documents:
            rows[document["id"]] = document
        return [d for d in documents if self.can_access_document(principal, d["id"], AccessAction.VIEW)]


class GrantService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _require(self, table: str, resource_id: str, label: str) -> None:
        result = self.supabase.table(table)\
            .select("id")\
            .eq("id", resource_id)\
            .limit(1)\
            .execute()
        if not result.data:
            raise NotFound(f"{label} not found")

    @staticmethod
    def _to_response(resource_type: ResourceType, row: Dict[str, Any]):
        if resource_type is ResourceType.DATASET:
            return DatasetGrantResponse(**row)
        return DocumentGrantResponse(**row)

    @store_call
    def get_user_grants(self, user_id: str) -> UserGrantsResponse:
        self._require("users", user_id, "User")
        datasets = self.supabase.table("dataset_access")\
            .select("*")\
            .eq("user_id", user_id)\
            .execute()
        documents = self.supabase.table("document_access")\
            .select("*")\
            .eq("user_id", user_id)\
            .execute()
        return UserGrantsResponse(
            user_id=user_id,
            datasets=[DatasetGrantResponse(**row) for row in datasets.data or []],
            documents=[DocumentGrantResponse(**row) for row in documents.data or []]
        )

    @store_call
    def upsert_grant(self, user_id: str, grant: GrantUpsert):
        """Create or overwrite the user's grant on one dataset or document"""
        grant_table, resource_table, key = _GRANT_TABLES[grant.resource_type]
        self._require("users", user_id, "User")
        self._require(resource_table, grant.resource_id, grant.resource_type.value.capitalize())

        result = self.supabase.table(grant_table).upsert(
            {
                "user_id": user_id,
                key: grant.resource_id,
                "can_view": grant.can_view,
                "can_edit": grant.can_edit,
                "can_delete": grant.can_delete,
                "updated_at": _now(),
            },
            on_conflict=f"user_id,{key}"
        ).execute()

        logger.info(f"Grant on {grant.resource_type.value} {grant.resource_id} set for user {user_id}")
        return self._to_response(grant.resource_type, result.data[0])

    @store_call
    def grant_full_access(self, user_id: str, resource_type: ResourceType, resource_id: str):
        return self.upsert_grant(user_id, GrantUpsert(
            resource_type=resource_type,
            resource_id=resource_id,
            **FULL_ACCESS.model_dump()
        ))

    @store_call
    def revoke_grant(self, user_id: str, resource_type: ResourceType, resource_id: str) -> bool:
        grant_table, _, key = _GRANT_TABLES[ResourceType(resource_type)]
        result = self.supabase.table(grant_table)\
            .delete()\
            .eq("user_id", user_id)\
            .eq(key, resource_id)\
            .execute()

        if not result.data:
            raise NotFound("Grant not found")

        return True

    @store_call
    def bulk_update_grants(self, user_id: str, bulk_data: BulkGrantUpdate) -> BulkGrantResponse:
        """Upsert every listed grant; with replace, then drop the user's unlisted grants"""
        self._require("users", user_id, "User")
        for grant in bulk_data.grants:
            _, resource_table, _ = _GRANT_TABLES[grant.resource_type]
            self._require(resource_table, grant.resource_id, grant.resource_type.value.capitalize())

        for grant in bulk_data.grants:
            self.upsert_grant(user_id, grant)

        removed = 0
        if bulk_data.replace:
            for resource_type, (grant_table, _, key) in _GRANT_TABLES.items():
                keep = [g.resource_id for g in bulk_data.grants if g.resource_type is resource_type]
                query = self.supabase.table(grant_table)\
                    .delete()\
                    .eq("user_id", user_id)
                if keep:
                    query = query.not_.in_(key, keep)
                result = query.execute()
                removed += len(result.data or [])

        return BulkGrantResponse(
            user_id=user_id,
            upserted_count=len(bulk_data.grants),
            removed_count=removed,
            message=f"Updated {len(bulk_data.grants)} grants, removed {removed}"
        )
