import logging
from datetime import datetime, timezone
import bcrypt
from supabase import Client
from app.config.settings import settings
from app.core.exceptions import Conflict, Forbidden, NotFound
from app.core.permissions import Principal, is_reserved_identifier, is_super_admin
from postgrest.exceptions import APIError
from app.database.supabase_client import UNIQUE_VIOLATION, store_call
from app.modules.credits.service import CreditLedger
from app.modules.roles.schemas import RoleResponse
from app.modules.users.schemas import (
    UserCreate, UserUpdate, UserResponse, UserWithRolesResponse,
    UserRoleSummary, UserRoleResponse
)
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

# Tables holding per-user rows, cleared in this order before the users row goes
_CASCADE_TABLES = ("user_roles", "dataset_access", "document_access", "credit_usages", "credits")


def hash_password(password: str) -> str:
    """Hash password with bcrypt (cost factor 12)."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class UserService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _get_user_row(self, user_id: str) -> Dict[str, Any]:
        result = self.supabase.table("users")\
            .select("*")\
            .eq("id", user_id)\
            .limit(1)\
            .execute()

        if not result.data:
            raise NotFound("User not found")

        return result.data[0]

    def _find_by(self, column: str, value: str, exclude_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        query = self.supabase.table("users").select("*").eq(column, value)
        if exclude_id:
            query = query.neq("id", exclude_id)
        result = query.limit(1).execute()
        return result.data[0] if result.data else None

    def _check_identifier_change(self, asgl_id: str, actor: Optional[Principal]) -> None:
        if is_reserved_identifier(asgl_id) and (actor is None or not is_super_admin(actor)):
            raise Forbidden(f"Only superadmins can assign the identifier '{asgl_id}'")

    @store_call
    def get_user_by_id(self, user_id: str) -> UserResponse:
        return UserResponse(**self._get_user_row(user_id))

    @store_call
    def find_user_by_identifier(self, identifier: str) -> Optional[UserResponse]:
        """Look a user up by email or asgl_id"""
        row = self._find_by("email", identifier) or self._find_by("asgl_id", identifier)
        return UserResponse(**row) if row else None

    @store_call
    def get_user_with_roles(self, user_id: str) -> UserWithRolesResponse:
        user_data = self._get_user_row(user_id)
        user_data["roles"] = [
            UserRoleSummary(id=role.id, name=role.name, description=role.description)
            for role in self.get_roles_for_principal(user_id)
        ]
        return UserWithRolesResponse(**user_data)

    @store_call
    def list_users(
        self,
        query: Optional[str] = None,
        limit: int = 10,
        offset: int = 0
    ) -> List[UserResponse]:
        """List users newest first; query matches email, asgl_id or name"""
        request = self.supabase.table("users").select("*")
        if query:
            pattern = f"%{query}%"
            request = request.or_(f"email.ilike.{pattern},asgl_id.ilike.{pattern},name.ilike.{pattern}")
        result = request.order("created_at", desc=True)\
            .limit(limit)\
            .offset(offset)\
            .execute()
        return [UserResponse(**user) for user in result.data]

    @store_call
    def create_user(self, user_data: UserCreate, actor: Optional[Principal] = None) -> UserWithRolesResponse:
        """Create a local user, optionally with roles and a password"""
        self._check_identifier_change(user_data.asgl_id, actor)
        if self._find_by("email", user_data.email):
            raise Conflict("User with this email already exists")
        if self._find_by("asgl_id", user_data.asgl_id):
            raise Conflict("User with this asgl_id already exists")
        self._validate_role_ids(user_data.role_ids)

        insert_data = {
            "asgl_id": user_data.asgl_id,
            "email": user_data.email,
            "name": user_data.name,
        }
        if user_data.password:
            insert_data["password_hash"] = hash_password(user_data.password)

        result = self.supabase.table("users").insert(insert_data).execute()
        user_id = result.data[0]["id"]

        if user_data.role_ids:
            self.supabase.table("user_roles")\
                .insert([{"user_id": user_id, "role_id": rid} for rid in dict.fromkeys(user_data.role_ids)])\
                .execute()

        if settings.auto_allocate_new_users:
            CreditLedger(self.supabase).ensure_allocation(user_id)

        logger.info(f"Created user {user_data.asgl_id}")
        return self.get_user_with_roles(user_id)

    @store_call
    def update_user(self, user_id: str, user_data: UserUpdate, actor: Optional[Principal] = None) -> UserResponse:
        current = self._get_user_row(user_id)

        update_data = {"updated_at": _now()}
        if user_data.email is not None:
            if self._find_by("email", user_data.email, exclude_id=user_id):
                raise Conflict("User with this email already exists")
            update_data["email"] = user_data.email
        if user_data.asgl_id is not None:
            if user_data.asgl_id != current["asgl_id"]:
                self._check_identifier_change(user_data.asgl_id, actor)
                self._check_identifier_change(current["asgl_id"], actor)
            if self._find_by("asgl_id", user_data.asgl_id, exclude_id=user_id):
                raise Conflict("User with this asgl_id already exists")
            update_data["asgl_id"] = user_data.asgl_id
        if user_data.name is not None:
            update_data["name"] = user_data.name
        if user_data.password:
            update_data["password_hash"] = hash_password(user_data.password)

        result = self.supabase.table("users")\
            .update(update_data)\
            .eq("id", user_id)\
            .execute()

        if not result.data:
            raise NotFound("User not found")

        return UserResponse(**result.data[0])

    @store_call
    def delete_user(self, user_id: str) -> bool:
        """Delete user together with memberships, grants and ledger rows"""
        user = self._get_user_row(user_id)

        for table in _CASCADE_TABLES:
            self.supabase.table(table)\
                .delete()\
                .eq("user_id", user_id)\
                .execute()

        for table in ("datasets", "documents"):
            self.supabase.table(table)\
                .update({"owner_id": None})\
                .eq("owner_id", user_id)\
                .execute()

        result = self.supabase.table("users")\
            .delete()\
            .eq("id", user_id)\
            .execute()

        logger.info(f"Deleted user {user['asgl_id']}")
        return len(result.data) > 0

    # Role membership

    def _validate_role_ids(self, role_ids: List[str]) -> None:
        unique_ids = list(dict.fromkeys(role_ids))
        if not unique_ids:
            return
        found = self.supabase.table("roles")\
            .select("id")\
            .in_("id", unique_ids)\
            .execute()
        missing = set(unique_ids) - {r["id"] for r in found.data or []}
        if missing:
            raise NotFound(f"Role not found: {sorted(missing)[0]}")

    @store_call
    def get_roles_for_principal(self, user_id: str) -> List[RoleResponse]:
        result = self.supabase.table("user_roles")\
            .select("role_id, roles(*)")\
            .eq("user_id", user_id)\
            .execute()

        roles = [RoleResponse(**item["roles"]) for item in result.data or [] if item.get("roles")]
        return sorted(roles, key=lambda r: r.name)

    @store_call
    def get_permissions_for_principal(self, user_id: str, role_ids: Optional[List[str]] = None) -> Set[str]:
        """Union of permission names over the user's roles"""
        if role_ids is None:
            role_ids = [role.id for role in self.get_roles_for_principal(user_id)]
        if not role_ids:
            return set()

        result = self.supabase.table("role_permissions")\
            .select("permission_id, permissions(name)")\
            .in_("role_id", role_ids)\
            .execute()

        return {
            rp["permissions"]["name"]
            for rp in result.data or []
            if rp.get("permissions") and rp["permissions"].get("name")
        }

    @store_call
    def assign_role(self, user_id: str, role_id: str) -> UserRoleResponse:
        self._get_user_row(user_id)
        self._validate_role_ids([role_id])

        existing = self.supabase.table("user_roles")\
            .select("id")\
            .eq("user_id", user_id)\
            .eq("role_id", role_id)\
            .limit(1)\
            .execute()

        if existing.data:
            raise Conflict("User already has this role")

        result = self.supabase.table("user_roles").insert({
            "user_id": user_id,
            "role_id": role_id
        }).execute()

        return UserRoleResponse(**result.data[0])

    @store_call
    def remove_role(self, user_id: str, role_id: str) -> bool:
        result = self.supabase.table("user_roles")\
            .delete()\
            .eq("user_id", user_id)\
            .eq("role_id", role_id)\
            .execute()

        if not result.data:
            raise NotFound("User does not have this role")

        return True

    @store_call
    def replace_roles(self, user_id: str, role_ids: List[str]) -> List[RoleResponse]:
        """Make the user's role set exactly role_ids. Additions land before removals."""
        self._get_user_row(user_id)
        self._validate_role_ids(role_ids)

        requested = list(dict.fromkeys(role_ids))
        current = self.supabase.table("user_roles")\
            .select("role_id")\
            .eq("user_id", user_id)\
            .execute()
        current_ids = {item["role_id"] for item in current.data or []}

        to_add = [rid for rid in requested if rid not in current_ids]
        to_remove = [rid for rid in current_ids if rid not in set(requested)]

        if to_add:
            self.supabase.table("user_roles").upsert(
                [{"user_id": user_id, "role_id": rid} for rid in to_add],
                on_conflict="user_id,role_id",
                ignore_duplicates=True
            ).execute()

        if to_remove:
            self.supabase.table("user_roles")\
                .delete()\
                .eq("user_id", user_id)\
                .in_("role_id", to_remove)\
                .execute()

        return self.get_roles_for_principal(user_id)

    # Principal resolution

    def _principal_from_row(self, row: Dict[str, Any]) -> Principal:
        roles = self.get_roles_for_principal(row["id"])
        permissions = self.get_permissions_for_principal(row["id"], role_ids=[r.id for r in roles])
        return Principal(
            id=row["id"],
            asgl_id=row["asgl_id"],
            email=row.get("email"),
            name=row.get("name"),
            roles=frozenset(r.name for r in roles),
            permissions=frozenset(permissions),
        )

    @store_call
    def load_principal(self, user_id: str) -> Principal:
        return self._principal_from_row(self._get_user_row(user_id))

    @store_call
    def resolve_auth_user(self, auth_user: Dict[str, Any]) -> Principal:
        """Map a Supabase Auth user onto its users row, creating the row on first login"""
        row = self._find_by("id", auth_user["id"])
        if row is None and auth_user.get("email"):
            # Admin-created account signing in through SSO for the first time
            row = self._find_by("email", auth_user["email"])
        if row is None:
            row = self._create_from_auth_user(auth_user)
        return self._principal_from_row(row)

    def _create_from_auth_user(self, auth_user: Dict[str, Any]) -> Dict[str, Any]:
        metadata = auth_user.get("user_metadata") or {}
        email = auth_user.get("email")
        asgl_id = metadata.get("asgl_id") or (email.split("@")[0] if email else auth_user["id"])
        # Self-service metadata and email must never yield a bootstrap admin id
        if is_reserved_identifier(asgl_id) or self._find_by("asgl_id", asgl_id):
            asgl_id = auth_user["id"]

        try:
            result = self.supabase.table("users").insert({
                "id": auth_user["id"],
                "asgl_id": asgl_id,
                "email": email,
                "name": metadata.get("full_name") or metadata.get("name"),
            }).execute()
        except APIError as e:
            if str(e.code) != UNIQUE_VIOLATION:
                raise
            # Concurrent first requests for the same user; the other insert won
            row = self._find_by("id", auth_user["id"])
            if row is None:
                raise
            return row

        row = result.data[0]
        logger.info(f"Created user {asgl_id} on first login")
        if settings.auto_allocate_new_users:
            CreditLedger(self.supabase).ensure_allocation(row["id"])
        return row
