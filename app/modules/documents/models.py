# Supabase table: documents
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

documents:
- id: uuid (primary key)
- dataset_id: uuid (foreign key to datasets.id, not null)
- name: text (not null)
- type: text (nullable) - e.g. "pdf", "docx", "txt"
- size: bigint (nullable) - bytes
- remote_id: text (nullable) - id of the document in the upstream knowledge base
- owner_id: uuid (nullable, foreign key to users.id) - creator; cleared when the user is deleted
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

Document bodies live in the upstream knowledge base; only metadata is kept here.
"""
