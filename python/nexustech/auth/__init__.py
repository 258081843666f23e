"""Authentication and authorization module.

This module provides:
- Token verification (JWKS verifier)
- Auth middleware for FastAPI, with guest sessions
- Ownership scoping predicates

Note: Test-only verifiers are in tests/support/test_verifier.py
"""

from nexustech.auth.middleware import AuthMiddleware, Viewer, get_user_viewer, get_viewer
from nexustech.auth.verifier import JwksVerifier, TokenVerifier

__all__ = [
    "AuthMiddleware",
    "Viewer",
    "get_viewer",
    "get_user_viewer",
    "JwksVerifier",
    "TokenVerifier",
]
