"""auth/ -- Authentication and authorization package for the admin panel.

Modules, leaf first: models, tokens (password hashing + JWT), store (user
records), validation, sessions (signup/login/refresh/logout/admin setup),
dependencies (the per-request authentication gate) and rbac (role gates).

Layer rule: auth/ may import from core/ and, in sessions.py only, from
audit.recorder. api/ imports from auth/, not the other way around.
"""
