import logging
from datetime import datetime, timezone
from supabase import Client
from app.config.permissions_config import PERMISSION_MATRIX, SUPER_ADMIN_ROLE
from app.core.exceptions import Conflict, InvalidInput, NotFound
from app.database.supabase_client import store_call
from app.modules.roles.schemas import (
    PermissionCreate, PermissionUpdate, PermissionResponse,
    RoleCreate, RoleUpdate, RoleResponse, RoleWithPermissionsResponse,
    RolePermissionResponse, BulkPermissionAssignResponse,
    RoleStatsResponse, InitializeDefaultsResponse
)
from typing import List, Optional

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PermissionService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _name_taken(self, name: str, exclude_id: Optional[str] = None) -> bool:
        query = self.supabase.table("permissions").select("id").eq("name", name)
        if exclude_id:
            query = query.neq("id", exclude_id)
        return bool(query.limit(1).execute().data)

    @store_call
    def create_permission(self, permission_data: PermissionCreate) -> PermissionResponse:
        """Create a new permission"""
        if self._name_taken(permission_data.name):
            raise Conflict("Permission with this name already exists")

        result = self.supabase.table("permissions").insert({
            "name": permission_data.name,
            "resource": permission_data.resource,
            "action": permission_data.action,
            "description": permission_data.description
        }).execute()

        logger.info(f"Created permission {permission_data.name}")
        return PermissionResponse(**result.data[0])

    @store_call
    def get_permission_by_id(self, permission_id: str) -> PermissionResponse:
        """Get permission by ID"""
        result = self.supabase.table("permissions")\
            .select("*")\
            .eq("id", permission_id)\
            .limit(1)\
            .execute()

        if not result.data:
            raise NotFound("Permission not found")

        return PermissionResponse(**result.data[0])

    @store_call
    def update_permission(self, permission_id: str, permission_data: PermissionUpdate) -> PermissionResponse:
        """Update permission"""
        update_data = {}
        if permission_data.name:
            if self._name_taken(permission_data.name, exclude_id=permission_id):
                raise Conflict("Permission with this name already exists")
            update_data["name"] = permission_data.name
        if permission_data.resource:
            update_data["resource"] = permission_data.resource
        if permission_data.action:
            update_data["action"] = permission_data.action
        if permission_data.description is not None:
            update_data["description"] = permission_data.description

        if not update_data:
            return self.get_permission_by_id(permission_id)

        result = self.supabase.table("permissions")\
            .update(update_data)\
            .eq("id", permission_id)\
            .execute()

        if not result.data:
            raise NotFound("Permission not found")

        return PermissionResponse(**result.data[0])

    @store_call
    def list_permissions(
        self,
        query: Optional[str] = None,
        resource: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[PermissionResponse]:
        """List permissions ordered by name, optionally filtered by resource or a name fragment"""
        request = self.supabase.table("permissions").select("*")
        if resource:
            request = request.eq("resource", resource)
        if query:
            request = request.ilike("name", f"%{query}%")
        result = request.order("name")\
            .limit(limit)\
            .offset(offset)\
            .execute()
        return [PermissionResponse(**permission) for permission in result.data]

    @store_call
    def delete_permission(self, permission_id: str) -> bool:
        """Delete permission and its role assignments"""
        self.get_permission_by_id(permission_id)

        self.supabase.table("role_permissions")\
            .delete()\
            .eq("permission_id", permission_id)\
            .execute()

        result = self.supabase.table("permissions")\
            .delete()\
            .eq("id", permission_id)\
            .execute()

        return len(result.data) > 0


class RoleService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _name_taken(self, name: str, exclude_id: Optional[str] = None) -> bool:
        query = self.supabase.table("roles").select("id").eq("name", name)
        if exclude_id:
            query = query.neq("id", exclude_id)
        return bool(query.limit(1).execute().data)

    @store_call
    def create_role(self, role_data: RoleCreate) -> RoleResponse:
        """Create a new role"""
        if self._name_taken(role_data.name):
            raise Conflict("Role with this name already exists")

        result = self.supabase.table("roles").insert({
            "name": role_data.name,
            "description": role_data.description
        }).execute()

        logger.info(f"Created role {role_data.name}")
        return RoleResponse(**result.data[0])

    @store_call
    def get_role_by_id(self, role_id: str) -> RoleResponse:
        """Get role by ID"""
        result = self.supabase.table("roles")\
            .select("*")\
            .eq("id", role_id)\
            .limit(1)\
            .execute()

        if not result.data:
            raise NotFound("Role not found")

        return RoleResponse(**result.data[0])

    @store_call
    def get_role_by_name(self, name: str) -> Optional[RoleResponse]:
        result = self.supabase.table("roles")\
            .select("*")\
            .eq("name", name)\
            .limit(1)\
            .execute()
        return RoleResponse(**result.data[0]) if result.data else None

    @store_call
    def get_role_with_permissions(self, role_id: str) -> RoleWithPermissionsResponse:
        """Get role with all associated permissions and the number of users holding it"""
        role = self.get_role_by_id(role_id)

        users_result = self.supabase.table("user_roles")\
            .select("id", count="exact")\
            .eq("role_id", role_id)\
            .execute()

        role_data = role.model_dump()
        role_data["permissions"] = self.get_role_permissions(role_id)
        role_data["user_count"] = users_result.count or 0

        return RoleWithPermissionsResponse(**role_data)

    @store_call
    def update_role(self, role_id: str, role_data: RoleUpdate) -> RoleResponse:
        """Update role"""
        current = self.get_role_by_id(role_id)

        update_data = {"updated_at": _now()}
        if role_data.name and role_data.name != current.name:
            if current.name == SUPER_ADMIN_ROLE:
                raise InvalidInput(f"Role '{SUPER_ADMIN_ROLE}' is reserved and cannot be renamed")
            if self._name_taken(role_data.name, exclude_id=role_id):
                raise Conflict("Role with this name already exists")
            update_data["name"] = role_data.name
        if role_data.description is not None:
            update_data["description"] = role_data.description

        result = self.supabase.table("roles")\
            .update(update_data)\
            .eq("id", role_id)\
            .execute()

        if not result.data:
            raise NotFound("Role not found")

        return RoleResponse(**result.data[0])

    @store_call
    def list_roles(
        self,
        query: Optional[str] = None,
        limit: int = 10,
        offset: int = 0
    ) -> List[RoleResponse]:
        """List roles ordered by name, optionally filtered by a name fragment"""
        request = self.supabase.table("roles").select("*")
        if query:
            request = request.ilike("name", f"%{query}%")
        result = request.order("name")\
            .limit(limit)\
            .offset(offset)\
            .execute()
        return [RoleResponse(**role) for role in result.data]

    @store_call
    def delete_role(self, role_id: str) -> bool:
        """Delete role; rejected while any user still holds it"""
        role = self.get_role_by_id(role_id)

        assigned = self.supabase.table("user_roles")\
            .select("id")\
            .eq("role_id", role_id)\
            .limit(1)\
            .execute()

        if assigned.data:
            raise Conflict(f"Cannot delete role '{role.name}' while it is assigned to users")

        self.supabase.table("role_permissions")\
            .delete()\
            .eq("role_id", role_id)\
            .execute()

        result = self.supabase.table("roles")\
            .delete()\
            .eq("id", role_id)\
            .execute()

        logger.info(f"Deleted role {role.name}")
        return len(result.data) > 0

    @store_call
    def assign_permission_to_role(self, role_id: str, permission_id: str) -> RolePermissionResponse:
        """Assign a permission to a role"""
        self.get_role_by_id(role_id)
        PermissionService(self.supabase).get_permission_by_id(permission_id)

        existing = self.supabase.table("role_permissions")\
            .select("id")\
            .eq("role_id", role_id)\
            .eq("permission_id", permission_id)\
            .limit(1)\
            .execute()

        if existing.data:
            raise Conflict("Permission already assigned to role")

        result = self.supabase.table("role_permissions").insert({
            "role_id": role_id,
            "permission_id": permission_id
        }).execute()

        return RolePermissionResponse(**result.data[0])

    @store_call
    def remove_permission_from_role(self, role_id: str, permission_id: str) -> bool:
        """Remove a permission from a role"""
        result = self.supabase.table("role_permissions")\
            .delete()\
            .eq("role_id", role_id)\
            .eq("permission_id", permission_id)\
            .execute()

        if not result.data:
            raise NotFound("Permission is not assigned to this role")

        return True

    @store_call
    def get_role_permissions(self, role_id: str) -> List[PermissionResponse]:
        """Get all permissions for a role"""
        result = self.supabase.table("role_permissions")\
            .select("permission_id, permissions(*)")\
            .eq("role_id", role_id)\
            .execute()

        permissions = []
        for item in result.data or []:
            if item.get("permissions"):
                permissions.append(PermissionResponse(**item["permissions"]))

        return sorted(permissions, key=lambda p: p.name)

    def _validate_permission_ids(self, permission_ids: List[str]) -> None:
        unique_ids = list(dict.fromkeys(permission_ids))
        if not unique_ids:
            return
        found = self.supabase.table("permissions")\
            .select("id")\
            .in_("id", unique_ids)\
            .execute()
        missing = set(unique_ids) - {p["id"] for p in found.data or []}
        if missing:
            raise NotFound(f"Permission not found: {sorted(missing)[0]}")

    @store_call
    def bulk_assign_permissions_to_role(self, role_id: str, permission_ids: List[str]) -> BulkPermissionAssignResponse:
        """Bulk assign multiple permissions to a role, skipping ones already assigned"""
        self.get_role_by_id(role_id)
        self._validate_permission_ids(permission_ids)

        requested = list(dict.fromkeys(permission_ids))
        existing_result = self.supabase.table("role_permissions")\
            .select("permission_id")\
            .eq("role_id", role_id)\
            .execute()

        existing_permission_ids = {item["permission_id"] for item in existing_result.data or []}

        insert_data = [
            {"role_id": role_id, "permission_id": pid}
            for pid in requested
            if pid not in existing_permission_ids
        ]

        assigned_permissions = []
        skipped_count = len(requested) - len(insert_data)

        if insert_data:
            result = self.supabase.table("role_permissions").insert(insert_data).execute()
            assigned_permissions = [RolePermissionResponse(**item) for item in result.data or []]

        return BulkPermissionAssignResponse(
            role_id=role_id,
            assigned_count=len(assigned_permissions),
            skipped_count=skipped_count,
            assigned_permissions=assigned_permissions,
            message=f"Assigned {len(assigned_permissions)} permissions, skipped {skipped_count} already assigned"
        )

    @store_call
    def bulk_update_role_permissions(self, role_id: str, permission_ids: List[str]) -> BulkPermissionAssignResponse:
        """Replace all permissions for a role: add the missing ones first, then drop the rest"""
        self.get_role_by_id(role_id)
        self._validate_permission_ids(permission_ids)

        requested = list(dict.fromkeys(permission_ids))
        existing_result = self.supabase.table("role_permissions")\
            .select("permission_id")\
            .eq("role_id", role_id)\
            .execute()
        existing_permission_ids = {item["permission_id"] for item in existing_result.data or []}

        to_add = [pid for pid in requested if pid not in existing_permission_ids]
        to_remove = [pid for pid in existing_permission_ids if pid not in set(requested)]

        assigned_permissions = []
        if to_add:
            result = self.supabase.table("role_permissions")\
                .insert([{"role_id": role_id, "permission_id": pid} for pid in to_add])\
                .execute()
            assigned_permissions = [RolePermissionResponse(**item) for item in result.data or []]

        if to_remove:
            self.supabase.table("role_permissions")\
                .delete()\
                .eq("role_id", role_id)\
                .in_("permission_id", to_remove)\
                .execute()

        return BulkPermissionAssignResponse(
            role_id=role_id,
            assigned_count=len(assigned_permissions),
            skipped_count=len(requested) - len(to_add),
            removed_count=len(to_remove),
            assigned_permissions=assigned_permissions,
            message=f"Updated role with {len(requested)} permissions"
        )

    @store_call
    def get_role_stats(self) -> RoleStatsResponse:
        def count(table: str) -> int:
            return self.supabase.table(table).select("id", count="exact").execute().count or 0

        return RoleStatsResponse(
            total_roles=count("roles"),
            total_permissions=count("permissions"),
            total_role_permissions=count("role_permissions"),
            total_user_roles=count("user_roles")
        )

    @store_call
    def initialize_defaults(self) -> InitializeDefaultsResponse:
        """Seed the permission matrix and default roles. Safe to run repeatedly: only missing rows are added."""
        permissions_created = 0
        roles_created = 0
        role_permissions_created = 0

        existing_permissions = {
            p["name"]: p["id"]
            for p in self.supabase.table("permissions").select("id, name").execute().data or []
        }
        for perm in PERMISSION_MATRIX["permissions"]:
            if perm["name"] in existing_permissions:
                continue
            result = self.supabase.table("permissions").upsert(
                {
                    "name": perm["name"],
                    "resource": perm["resource"],
                    "action": perm["action"],
                    "description": perm["description"]
                },
                on_conflict="name",
                ignore_duplicates=True
            ).execute()
            if result.data:
                existing_permissions[perm["name"]] = result.data[0]["id"]
                permissions_created += 1

        # Re-read so ids created concurrently by another seeder are known
        existing_permissions = {
            p["name"]: p["id"]
            for p in self.supabase.table("permissions").select("id, name").execute().data or []
        }

        for role in PERMISSION_MATRIX["roles"]:
            current = self.get_role_by_name(role["name"])
            if current is None:
                self.supabase.table("roles").upsert(
                    {"name": role["name"], "description": role["description"]},
                    on_conflict="name",
                    ignore_duplicates=True
                ).execute()
                current = self.get_role_by_name(role["name"])
                roles_created += 1

            assigned = {
                rp["permission_id"]
                for rp in self.supabase.table("role_permissions")
                .select("permission_id")
                .eq("role_id", current.id)
                .execute().data or []
            }
            new_assignments = [
                {"role_id": current.id, "permission_id": existing_permissions[name]}
                for name in role["permissions"]
                if name in existing_permissions and existing_permissions[name] not in assigned
            ]
            if new_assignments:
                self.supabase.table("role_permissions").upsert(
                    new_assignments,
                    on_conflict="role_id,permission_id",
                    ignore_duplicates=True
                ).execute()
                role_permissions_created += len(new_assignments)

        logger.info(
            f"Defaults initialized: {permissions_created} permissions, {roles_created} roles, "
            f"{role_permissions_created} role permissions created"
        )
        return InitializeDefaultsResponse(
            permissions_created=permissions_created,
            roles_created=roles_created,
            role_permissions_created=role_permissions_created,
            message="Default roles and permissions initialized successfully"
        )
