"""FastAPI dependencies for route handlers.

Common dependencies like database sessions, authentication, etc.
"""

from nexustech.auth.middleware import get_user_viewer, get_viewer, require_internal_caller
from nexustech.db.session import get_db

__all__ = ["get_db", "get_viewer", "get_user_viewer", "require_internal_caller"]
