# Supabase Auth
# Bearer tokens are issued and validated by Supabase Auth (auth.users).
# The gateway keeps its own principal row in the users table, keyed by the
# auth user id and created on first login (see app/modules/users/models.py).

"""
Supabase Auth provides:
- auth.sign_in_with_password() - Authenticate users
- auth.get_user() - Resolve the auth user from a JWT
- auth.sign_out() - Logout users

The auth user's user_metadata may carry:
- asgl_id: stable external identifier (falls back to the email local part)
- full_name / name: display name
"""
