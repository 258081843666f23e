"""Authentication middleware for FastAPI.

Provides:
- AuthMiddleware: bearer token, guest session and internal header handling
- Viewer: the identity attached to request.state
- get_viewer / get_user_viewer: dependencies for route handlers
- require_internal_caller: dependency for /internal/* operator routes
"""

import hmac
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from nexustech.auth.verifier import TokenVerifier
from nexustech.errors import ApiError, ApiErrorCode, ForbiddenError
from nexustech.logging import get_logger, set_viewer_context
from nexustech.responses import error_response

logger = get_logger(__name__)

AUTHORIZATION_HEADER = "authorization"
INTERNAL_HEADER = "x-nexustech-internal"
GUEST_SESSION_HEADER = "x-guest-session"
MAX_GUEST_SESSION_LENGTH = 128

# Paths that don't require authentication
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}
INTERNAL_PREFIX = "/internal/"

BootstrapCallback = Callable[[str, dict[str, Any]], UUID]


@dataclass(frozen=True)
class Viewer:
    """Identity making the request.

    Attributes:
        subject: Identity-provider subject (None for guests). This is the
            value stored in every owner_id column.
        user_id: Primary key of the users row (None for guests).
        guest_session_id: Opaque guest session (None for signed-in users).
    """

    subject: str | None
    user_id: UUID | None = None
    guest_session_id: str | None = None

    @property
    def is_guest(self) -> bool:
        return self.subject is None


def _error_json_response(code: ApiErrorCode, message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(code, message))


def internal_secret_matches(header_value: str | None, internal_secret: str | None) -> bool:
    """Constant-time comparison of the internal header against the configured secret."""
    if header_value is None or not internal_secret:
        return False
    return hmac.compare_digest(header_value.encode(), internal_secret.encode())


class AuthMiddleware(BaseHTTPMiddleware):
    """Authentication middleware for FastAPI.

    Order of checks:
    1. Skip public paths
    2. Verify internal header (all paths in staging/prod, /internal/* whenever a secret is set)
    3. /internal/* paths need no viewer and stop here
    4. Bearer token present: verify, bootstrap the user, attach a signed-in Viewer
    5. Otherwise an X-Guest-Session header attaches a guest Viewer
    6. Otherwise 401
    """

    def __init__(
        self,
        app: ASGIApp,
        verifier: TokenVerifier,
        requires_internal_header: bool = False,
        internal_secret: str | None = None,
        bootstrap_callback: BootstrapCallback | None = None,
    ):
        """Initialize the auth middleware.

        Args:
            app: The ASGI application.
            verifier: TokenVerifier implementation for JWT verification.
            requires_internal_header: Whether every request needs X-Nexustech-Internal.
            internal_secret: The expected internal secret value.
            bootstrap_callback: Function(subject, claims) -> users.id, called after
                successful auth to ensure the user row (and welcome bonus) exist.
        """
        super().__init__(app)
        self.verifier = verifier
        self.requires_internal_header = requires_internal_header
        self.internal_secret = internal_secret
        self.bootstrap_callback = bootstrap_callback

    async def dispatch(self, request: Request, call_next) -> JSONResponse:
        path = request.url.path
        if path in PUBLIC_PATHS:
            return await call_next(request)

        is_internal_path = path.startswith(INTERNAL_PREFIX)
        if self.requires_internal_header or (is_internal_path and self.internal_secret):
            header_value = request.headers.get(INTERNAL_HEADER)
            if not internal_secret_matches(header_value, self.internal_secret):
                logger.warning("auth_failure", reason="internal_header_invalid")
                return _error_json_response(
                    ApiErrorCode.E_INTERNAL_ONLY, "Internal API access required", 403
                )
            request.state.internal_caller = True

        if is_internal_path:
            return await call_next(request)

        auth_header = request.headers.get(AUTHORIZATION_HEADER)
        if auth_header:
            viewer_or_error = self._authenticate(auth_header)
            if isinstance(viewer_or_error, JSONResponse):
                return viewer_or_error
            request.state.viewer = viewer_or_error
        else:
            guest_session_id = (request.headers.get(GUEST_SESSION_HEADER) or "").strip()
            if not guest_session_id or len(guest_session_id) > MAX_GUEST_SESSION_LENGTH:
                logger.warning("auth_failure", reason="missing_header")
                return _error_json_response(
                    ApiErrorCode.E_UNAUTHENTICATED, "Authentication required", 401
                )
            request.state.viewer = Viewer(subject=None, guest_session_id=guest_session_id)

        viewer = request.state.viewer
        set_viewer_context(viewer.subject, viewer.guest_session_id)
        return await call_next(request)

    def _authenticate(self, auth_header: str) -> Viewer | JSONResponse:
        if not auth_header.lower().startswith("bearer ") or not auth_header[7:].strip():
            logger.warning("auth_failure", reason="invalid_header_format")
            return _error_json_response(
                ApiErrorCode.E_UNAUTHENTICATED, "Invalid authorization header format", 401
            )

        try:
            payload = self.verifier.verify(auth_header[7:].strip())
        except ApiError as e:
            return _error_json_response(e.code, e.message, e.status_code)

        subject = payload["sub"]
        user_id = None
        if self.bootstrap_callback:
            try:
                user_id = self.bootstrap_callback(subject, payload)
            except Exception:
                logger.exception("bootstrap_failed", subject=subject)
                return _error_json_response(ApiErrorCode.E_INTERNAL, "Internal server error", 500)

        return Viewer(subject=subject, user_id=user_id)


def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency: the signed-in or guest viewer.

    Raises:
        ApiError(E_UNAUTHENTICATED): If no viewer was attached.
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return viewer


def get_user_viewer(request: Request) -> Viewer:
    """FastAPI dependency: a signed-in viewer. Guests are rejected."""
    viewer = get_viewer(request)
    if viewer.is_guest:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Sign in required")
    return viewer


def require_internal_caller(request: Request) -> None:
    """FastAPI dependency for /internal/* routes.

    The middleware already rejected a wrong header when a secret is
    configured. Without a secret (local/test) the routes stay open.
    """
    if getattr(request.state, "internal_caller", False):
        return
    settings_secret = getattr(request.app.state, "internal_secret", None)
    if settings_secret:
        raise ForbiddenError(ApiErrorCode.E_INTERNAL_ONLY, "Internal API access required")
