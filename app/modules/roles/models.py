# Supabase tables: permissions, roles, role_permissions
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

permissions:
- id: uuid (primary key)
- name: text (not null, unique) - "<resource>.<action>", e.g. "datasets.view"
- resource: text (nullable) - e.g. "datasets", "documents", "users"
- action: text (nullable) - e.g. "view", "edit", "manage_access"
- description: text (nullable)
- created_at: timestamp (default: now())

roles:
- id: uuid (primary key)
- name: text (not null, unique) - e.g. "super_admin", "admin", "manager", "user", "guest"
- description: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

role_permissions:
- id: uuid (primary key)
- role_id: uuid (foreign key to roles.id, not null)
- permission_id: uuid (foreign key to permissions.id, not null)
- created_at: timestamp (default: now())
- unique constraint on (role_id, permission_id)

"super_admin" is reserved: it cannot be renamed, and like every role it
cannot be deleted while any user_roles row references it.
"""
