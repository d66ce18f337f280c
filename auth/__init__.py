"""auth/ -- Session authority package for Matcha.

Credential codec, CSRF double-submit tokens, password hashing, the user
repository and the FastAPI guards built on them.

Layer rule: auth/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/ or photos/.
api/ imports from auth/, not the other way around.
"""
