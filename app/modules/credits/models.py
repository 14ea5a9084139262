# Supabase tables: credits, credit_usages
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

credits:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, not null)
- month: integer (not null, 1..12)
- year: integer (not null)
- total_credits: integer (not null)
- used_credits: integer (not null, default: 0)
- remaining_credits: integer (not null)
- last_chat_at: timestamp (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- unique constraint on (user_id, month, year)
- check (used_credits >= 0 and remaining_credits >= 0
         and remaining_credits = total_credits - used_credits)

credit_usages:
- id: uuid (primary key)
- user_id: uuid (foreign key to users.id, not null)
- credit_id: uuid (foreign key to credits.id, not null)
- amount: integer (not null) - credits deducted; 0 for bonus and admin entries
- action: text (not null) - "chat", "bonus", "admin_update", "system_create", ...
- metadata: text (nullable) - JSON document
- created_at: timestamp (default: now())

credit_usages is append-only; rows disappear only when their user is deleted.

Expected Postgres functions (plpgsql, called through supabase.rpc). Each one
runs in a single transaction: the credits change and its credit_usages row
commit together or not at all. All return setof credits.

use_credit(p_user_id uuid, p_month int, p_year int, p_amount int,
           p_action text, p_metadata text, p_at timestamptz)
    update credits
       set used_credits = used_credits + p_amount,
           remaining_credits = remaining_credits - p_amount,
           last_chat_at = p_at, updated_at = p_at
     where user_id = p_user_id and month = p_month and year = p_year
       and remaining_credits >= p_amount
    returning * into row;
    if found: insert credit_usages (user_id, credit_id, amount, action, metadata)
              values (p_user_id, row.id, p_amount, p_action, p_metadata);
              return next row;
    -- no row returned when unallocated or short

add_bonus_credit(p_credit_id uuid, p_amount int, p_metadata text, p_at timestamptz)
    update credits
       set total_credits = total_credits + p_amount,
           remaining_credits = remaining_credits + p_amount,
           updated_at = p_at
     where id = p_credit_id
    returning * into row;
    if found: insert credit_usages (..., amount = 0, action = 'bonus', p_metadata);
              return next row;

set_credit_balance(p_credit_id uuid, p_expected_total int, p_expected_used int,
                   p_total int, p_used int, p_metadata text, p_at timestamptz)
    update credits
       set total_credits = p_total, used_credits = p_used,
           remaining_credits = p_total - p_used, updated_at = p_at
     where id = p_credit_id
       and total_credits = p_expected_total and used_credits = p_expected_used
    returning * into row;
    if found: insert credit_usages (..., amount = 0, action = 'admin_update', p_metadata);
              return next row;
    -- no row returned when the balance moved since it was read

allocate_credit(p_user_id uuid, p_month int, p_year int, p_total int, p_metadata text)
    insert into credits (user_id, month, year, total_credits, used_credits, remaining_credits)
    values (p_user_id, p_month, p_year, p_total, 0, p_total)
    returning * into row;
    insert credit_usages (..., amount = 0, action = 'system_create', p_metadata);
    return next row;
    -- raises 23505 when the period already exists
"""
