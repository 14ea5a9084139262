# Supabase tables: dataset_access, document_access
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

dataset_access:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, not null)
- dataset_id: uuid (foreign key to datasets.id, not null)
- can_view: boolean (not null, default: false)
- can_edit: boolean (not null, default: false)
- can_delete: boolean (not null, default: false)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- unique constraint on (user_id, dataset_id)

document_access:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, not null)
- document_id: uuid (foreign key to documents.id, not null)
- can_view / can_edit / can_delete: boolean (not null, default: false)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- unique constraint on (user_id, document_id)

A row is an explicit decision for that node, including an explicit "no".
No row means the node says nothing and the decision comes from elsewhere:
for datasets the nearest ancestor with a row, for documents (view only)
the parent dataset.
"""
