"""
Users module: staff accounts (admin / sales).

Accounts are managed by admins under /auth/users. Rows are deactivated, never deleted.
"""
