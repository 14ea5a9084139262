# Supabase tables: users, user_roles
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py
# Authentication is handled by Supabase Auth (auth.users table)

"""
Expected Supabase table structure:

users:
- id: uuid (primary key, equals auth.users.id for users who signed in through Supabase Auth)
- asgl_id: text (unique, not null) - stable external identifier
- email: text (unique, nullable)
- name: text (nullable)
- password_hash: text (nullable) - bcrypt hash for admin-created local accounts
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

user_roles:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, not null)
- role_id: uuid (foreign key to roles.id, not null)
- created_at: timestamp (default: now())
- unique constraint on (user_id, role_id)

Deleting a user removes, in order: user_roles, dataset_access,
document_access, credit_usages, credits rows, then the users row.
Datasets and documents the user owned keep existing with owner_id cleared.
"""
