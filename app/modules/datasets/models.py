# Supabase table: datasets
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

datasets:
- id: uuid (primary key)
- name: text (not null)
- parent_id: uuid (nullable, foreign key to datasets.id)
- remote_id: text (nullable) - id of the dataset in the upstream knowledge base
- owner_id: uuid (nullable, foreign key to users.id) - creator; cleared when the user is deleted
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

The parent links form a forest. Re-parenting under the dataset itself or one
of its descendants is rejected, and a dataset that still has child datasets
or documents cannot be deleted.
"""
