"""
Permission resolver over an explicitly passed Principal.

Nothing here touches the store or request state: the Principal is resolved
once per request (app.core.dependencies) and handed to every check.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from app.config.permissions_config import ADMIN_ROLES, SUPER_ADMIN_ROLE
from app.config.settings import settings


@dataclass(frozen=True)
class Principal:
    id: str
    asgl_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    roles: FrozenSet[str] = field(default_factory=frozenset)
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "asgl_id": self.asgl_id,
            "email": self.email,
            "name": self.name,
            "roles": sorted(self.roles),
            "permissions": sorted(self.permissions),
            "is_admin": is_admin(self),
            "is_super_admin": is_super_admin(self),
        }


# Legacy bootstrap: these identifiers were admins before the role tables existed.
# Evaluated before role resolution; removing them changes who is admin.
def is_legacy_admin_id(asgl_id: str) -> bool:
    return asgl_id in settings.get_legacy_admin_ids()


def is_legacy_superadmin_id(asgl_id: str) -> bool:
    return asgl_id == settings.legacy_superadmin_id


def is_reserved_identifier(asgl_id: str) -> bool:
    """Bootstrap ids grant admin on their own; only a superadmin may hand them out"""
    return is_legacy_admin_id(asgl_id) or is_legacy_superadmin_id(asgl_id)


def is_super_admin(principal: Principal) -> bool:
    if is_legacy_superadmin_id(principal.asgl_id):
        return True
    return SUPER_ADMIN_ROLE in principal.roles


def is_admin(principal: Principal) -> bool:
    if is_legacy_admin_id(principal.asgl_id):
        return True
    return any(role in principal.roles for role in ADMIN_ROLES)


def has_permission(principal: Principal, permission_name: str) -> bool:
    """Superadmin satisfies any name, including ones that were never seeded"""
    if is_super_admin(principal):
        return True
    return permission_name in principal.permissions

