"""Token verification implementations.

Provides:
- TokenVerifier: Protocol for token verification
- JwksVerifier: Verifier backed by the identity provider's JWKS endpoint

Note: Test-only verifiers are in tests/support/test_verifier.py
"""

import threading
from typing import Any, Protocol

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    PyJWKClientError,
)

from nexustech.errors import ApiError, ApiErrorCode
from nexustech.logging import get_logger

logger = get_logger(__name__)

# Clock skew allowance in seconds
CLOCK_SKEW_SECONDS = 60

ALLOWED_ALGORITHMS = ["RS256", "ES256"]


class TokenVerifier(Protocol):
    """Protocol for token verification.

    Implementations must verify JWT tokens and return decoded claims.
    """

    def verify(self, token: str) -> dict[str, Any]:
        """Verify token and return decoded claims.

        Raises:
            ApiError(E_UNAUTHENTICATED): Token is invalid, expired, or malformed.
            ApiError(E_AUTH_UNAVAILABLE): Infrastructure failure (JWKS unreachable).
        """
        ...


def _invalid(reason: str, message: str, exc: Exception | None = None) -> ApiError:
    logger.warning("auth_failure", reason=reason, error=str(exc) if exc else None)
    return ApiError(ApiErrorCode.E_UNAUTHENTICATED, message)


class JwksVerifier:
    """Production token verifier using the identity provider's JWKS.

    Validates:
    - Signature via JWKS (RS256 or ES256)
    - exp with 60s clock skew
    - iss matches the configured issuer (trailing slash stripped)
    - aud is in the configured audience list
    - sub is a non-empty string (opaque subject, not assumed to be a UUID)
    """

    def __init__(
        self,
        jwks_url: str,
        issuer: str,
        audiences: list[str],
        cache_ttl: int = 3600,
    ):
        self.jwks_url = jwks_url
        self.issuer = issuer.rstrip("/")
        self.audiences = audiences
        self.cache_ttl = cache_ttl

        self._jwks_client: PyJWKClient | None = None
        self._jwks_lock = threading.Lock()

    def _new_client(self) -> PyJWKClient:
        return PyJWKClient(self.jwks_url, cache_keys=True, lifespan=self.cache_ttl)

    def _get_jwks_client(self) -> PyJWKClient:
        with self._jwks_lock:
            if self._jwks_client is None:
                self._jwks_client = self._new_client()
            return self._jwks_client

    def _refresh_jwks(self) -> None:
        """Drop cached keys (called on kid miss after a key rotation)."""
        with self._jwks_lock:
            self._jwks_client = self._new_client()

    def verify(self, token: str) -> dict[str, Any]:
        try:
            signing_key = self._get_signing_key(token)
        except PyJWKClientError as e:
            logger.warning("auth_failure", reason="jwks_unavailable", error=str(e))
            raise ApiError(
                ApiErrorCode.E_AUTH_UNAVAILABLE,
                "Authentication service unavailable",
            ) from e

        try:
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=ALLOWED_ALGORITHMS,
                audience=self.audiences,
                issuer=self.issuer,
                leeway=CLOCK_SKEW_SECONDS,
                options={"require": ["exp", "iss", "sub"], "verify_aud": True},
            )
        except ExpiredSignatureError as e:
            raise _invalid("expired_token", "Token expired", e) from e
        except InvalidSignatureError as e:
            raise _invalid("invalid_signature", "Invalid token signature", e) from e
        except InvalidIssuerError as e:
            raise _invalid("invalid_issuer", "Invalid token issuer", e) from e
        except InvalidAudienceError as e:
            raise _invalid("invalid_audience", "Invalid token audience", e) from e
        except DecodeError as e:
            raise _invalid("decode_error", "Invalid token format", e) from e
        except InvalidTokenError as e:
            raise _invalid("invalid_token", "Invalid token", e) from e

        sub = payload.get("sub")
        if not isinstance(sub, str) or not sub.strip():
            raise _invalid("missing_sub", "Invalid token: missing sub")

        return payload

    def _get_signing_key(self, token: str) -> Any:
        """Get the signing key for the token, refreshing JWKS once on kid miss."""
        client = self._get_jwks_client()

        try:
            return client.get_signing_key_from_jwt(token)
        except PyJWKClientError as e:
            if "Unable to find" not in str(e) and "kid" not in str(e).lower():
                raise

            logger.info("jwks_refresh", reason="kid_miss")
            self._refresh_jwks()
            try:
                return self._get_jwks_client().get_signing_key_from_jwt(token)
            except PyJWKClientError as retry_e:
                raise _invalid(
                    "kid_not_found", "Invalid token: signing key not found", retry_e
                ) from retry_e
