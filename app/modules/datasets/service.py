import logging
from datetime import datetime, timezone
from supabase import Client
from app.core.exceptions import Conflict, Forbidden, InvalidInput, NotFound
from app.core.permissions import Principal
from app.database.supabase_client import store_call
from app.modules.access.schemas import AccessAction, ResourceType
from app.modules.access.service import AccessResolver, GrantService
from app.modules.datasets.schemas import DatasetCreate, DatasetUpdate, DatasetResponse, DatasetTreeResponse
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class DatasetService:
    def __init__(self, supabase: Client, resolver: Optional[AccessResolver] = None):
        self.supabase = supabase
        self.resolver = resolver or AccessResolver(supabase)

    def _get_row(self, dataset_id: str) -> Dict[str, Any]:
        result = self.supabase.table("datasets")\
            .select("*")\
            .eq("id", dataset_id)\
            .limit(1)\
            .execute()

        if not result.data:
            raise NotFound("Dataset not found")

        return result.data[0]

    def _is_descendant_or_self(self, dataset_id: str, candidate_id: str) -> bool:
        """Walk up from candidate_id; True when dataset_id is on the way"""
        visited = set()
        current: Optional[str] = candidate_id
        while current:
            if current == dataset_id:
                return True
            if current in visited:
                logger.warning(f"Dataset parent cycle detected at {current}")
                return True
            visited.add(current)
            current = self._get_row(current).get("parent_id")
        return False

    @store_call
    def get_dataset(self, dataset_id: str) -> DatasetResponse:
        return DatasetResponse(**self._get_row(dataset_id))

    @store_call
    def create_dataset(self, principal: Principal, dataset_data: DatasetCreate) -> DatasetResponse:
        """Create a dataset; the creator gets full access to it"""
        if dataset_data.parent_id:
            if not self.resolver.can_access_dataset(principal, dataset_data.parent_id, AccessAction.EDIT):
                raise Forbidden("You do not have edit access to the parent dataset")

        result = self.supabase.table("datasets").insert({
            "name": dataset_data.name,
            "parent_id": dataset_data.parent_id,
            "remote_id": dataset_data.remote_id,
            "owner_id": principal.id
        }).execute()
        dataset = result.data[0]

        GrantService(self.supabase).grant_full_access(principal.id, ResourceType.DATASET, dataset["id"])
        logger.info(f"Dataset {dataset['id']} created by {principal.asgl_id}")
        return DatasetResponse(**dataset)

    @store_call
    def update_dataset(self, dataset_id: str, dataset_data: DatasetUpdate) -> DatasetResponse:
        self._get_row(dataset_id)

        update_data = {"updated_at": datetime.now(timezone.utc).isoformat()}
        if dataset_data.name is not None:
            update_data["name"] = dataset_data.name
        if dataset_data.remote_id is not None:
            update_data["remote_id"] = dataset_data.remote_id
        if "parent_id" in dataset_data.model_fields_set:
            new_parent = dataset_data.parent_id
            if new_parent and self._is_descendant_or_self(dataset_id, new_parent):
                raise InvalidInput("A dataset cannot be moved under itself or one of its descendants")
            update_data["parent_id"] = new_parent

        result = self.supabase.table("datasets")\
            .update(update_data)\
            .eq("id", dataset_id)\
            .execute()

        if not result.data:
            raise NotFound("Dataset not found")

        return DatasetResponse(**result.data[0])

    @store_call
    def delete_dataset(self, dataset_id: str) -> bool:
        """Delete an empty dataset together with its grants"""
        self._get_row(dataset_id)

        children = self.supabase.table("datasets")\
            .select("id")\
            .eq("parent_id", dataset_id)\
            .limit(1)\
            .execute()
        if children.data:
            raise Conflict("Dataset still has child datasets")

        documents = self.supabase.table("documents")\
            .select("id")\
            .eq("dataset_id", dataset_id)\
            .limit(1)\
            .execute()
        if documents.data:
            raise Conflict("Dataset still has documents")

        self.supabase.table("dataset_access")\
            .delete()\
            .eq("dataset_id", dataset_id)\
            .execute()

        result = self.supabase.table("datasets")\
            .delete()\
            .eq("id", dataset_id)\
            .execute()

        logger.info(f"Dataset {dataset_id} deleted")
        return len(result.data) > 0

    @store_call
    def list_datasets(self, principal: Principal, parent_id: Optional[str] = None) -> List[DatasetResponse]:
        if parent_id:
            self._get_row(parent_id)
        return [DatasetResponse(**d) for d in self.resolver.list_accessible_datasets(principal, parent_id)]

    @store_call
    def get_dataset_tree(self, principal: Principal, dataset_id: str) -> DatasetTreeResponse:
        """Dataset with its viewable descendants and their documents, nested"""
        root = self._get_row(dataset_id)
        nodes: Dict[str, Dict[str, Any]] = {root["id"]: {**root, "children": [], "documents": []}}
        order = [root["id"]]
        frontier = [root["id"]]

        while frontier:
            result = self.supabase.table("datasets")\
                .select("*")\
                .in_("parent_id", frontier)\
                .order("name")\
                .execute()
            frontier = []
            for child in result.data or []:
                if child["id"] in nodes:
                    continue
                if not self.resolver.can_access_dataset(principal, child["id"], AccessAction.VIEW):
                    continue
                nodes[child["id"]] = {**child, "children": [], "documents": []}
                order.append(child["id"])
                frontier.append(child["id"])

        documents = self.supabase.table("documents")\
            .select("*")\
            .in_("dataset_id", order)\
            .order("name")\
            .execute()
        for document in documents.data or []:
            if self.resolver.can_access_document(principal, document["id"], AccessAction.VIEW):
                nodes[document["dataset_id"]]["documents"].append(document)

        for node_id in order[1:]:
            node = nodes[node_id]
            nodes[node["parent_id"]]["children"].append(node)

        return DatasetTreeResponse(**nodes[root["id"]])
