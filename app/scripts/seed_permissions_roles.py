"""
Seed Permissions and Roles Script
Populates the permissions and roles tables from the permission matrix and
optionally gives one existing user the super_admin role.
Safe to re-run: only missing rows are added.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from app.config.permissions_config import SUPER_ADMIN_ROLE
from app.core.exceptions import Conflict, GatewayError
from app.database.supabase_client import SupabaseClient
from app.modules.roles.service import RoleService
from app.modules.users.service import UserService
from supabase import Client
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def grant_super_admin(supabase: Client, identifier: str) -> bool:
    """Assign super_admin to the user with this email or asgl_id"""
    users = UserService(supabase)
    user = users.find_user_by_identifier(identifier)
    if user is None:
        logger.error(f"User not found: {identifier}")
        return False

    role = RoleService(supabase).get_role_by_name(SUPER_ADMIN_ROLE)
    try:
        users.assign_role(user.id, role.id)
        logger.info(f"Assigned {SUPER_ADMIN_ROLE} to {user.asgl_id}")
    except Conflict:
        logger.info(f"{user.asgl_id} already has {SUPER_ADMIN_ROLE}")
    return True


def main(argv=None):
    """Main function to seed permissions and roles"""
    parser = argparse.ArgumentParser(description="Seed default permissions and roles")
    parser.add_argument("--super-admin", metavar="EMAIL_OR_ASGL_ID", help="give this user the super_admin role")
    args = parser.parse_args(argv)

    supabase = SupabaseClient.get_service_client()
    logger.info("Starting permissions and roles seeding...")
    try:
        result = RoleService(supabase).initialize_defaults()
        logger.info(
            f"Seeding completed: {result.permissions_created} permissions, {result.roles_created} roles, "
            f"{result.role_permissions_created} role permissions created"
        )
        if args.super_admin and not grant_super_admin(supabase, args.super_admin):
            return 1
    except GatewayError as e:
        logger.error(f"Error during seeding: {e.error}: {e.detail}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
