"""API error definitions.

All API errors are defined here with their corresponding HTTP status codes.
Service code raises these; the exception handlers in nexustech.responses render
them into the error envelope.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Authentication errors (401)
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"

    # Payment errors (402)
    E_INSUFFICIENT_SHARDS = "E_INSUFFICIENT_SHARDS"

    # Authorization errors (403)
    E_FORBIDDEN = "E_FORBIDDEN"
    E_INTERNAL_ONLY = "E_INTERNAL_ONLY"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_USER_NOT_FOUND = "E_USER_NOT_FOUND"
    E_NEXUS_NOT_FOUND = "E_NEXUS_NOT_FOUND"
    E_NOTEBOOK_NOT_FOUND = "E_NOTEBOOK_NOT_FOUND"
    E_CHUNK_NOT_FOUND = "E_CHUNK_NOT_FOUND"
    E_TAG_NOT_FOUND = "E_TAG_NOT_FOUND"
    E_META_TAG_NOT_FOUND = "E_META_TAG_NOT_FOUND"
    E_ATTACHMENT_NOT_FOUND = "E_ATTACHMENT_NOT_FOUND"
    E_CONNECTION_NOT_FOUND = "E_CONNECTION_NOT_FOUND"
    E_CONTENT_ITEM_NOT_FOUND = "E_CONTENT_ITEM_NOT_FOUND"
    E_CONVERSATION_NOT_FOUND = "E_CONVERSATION_NOT_FOUND"
    E_CONDUIT_NOT_FOUND = "E_CONDUIT_NOT_FOUND"
    E_TEMPLATE_NOT_FOUND = "E_TEMPLATE_NOT_FOUND"

    # Conflict errors (409)
    E_CONNECTION_EXISTS = "E_CONNECTION_EXISTS"
    E_GUEST_NEXUS_LIMIT = "E_GUEST_NEXUS_LIMIT"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_NAME_INVALID = "E_NAME_INVALID"
    E_INVALID_PARENT = "E_INVALID_PARENT"

    # Server errors
    E_AUTH_UNAVAILABLE = "E_AUTH_UNAVAILABLE"  # 503
    E_INTERNAL = "E_INTERNAL"  # 500


ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_INSUFFICIENT_SHARDS: 402,
    ApiErrorCode.E_FORBIDDEN: 403,
    ApiErrorCode.E_INTERNAL_ONLY: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_USER_NOT_FOUND: 404,
    ApiErrorCode.E_NEXUS_NOT_FOUND: 404,
    ApiErrorCode.E_NOTEBOOK_NOT_FOUND: 404,
    ApiErrorCode.E_CHUNK_NOT_FOUND: 404,
    ApiErrorCode.E_TAG_NOT_FOUND: 404,
    ApiErrorCode.E_META_TAG_NOT_FOUND: 404,
    ApiErrorCode.E_ATTACHMENT_NOT_FOUND: 404,
    ApiErrorCode.E_CONNECTION_NOT_FOUND: 404,
    ApiErrorCode.E_CONTENT_ITEM_NOT_FOUND: 404,
    ApiErrorCode.E_CONVERSATION_NOT_FOUND: 404,
    ApiErrorCode.E_CONDUIT_NOT_FOUND: 404,
    ApiErrorCode.E_TEMPLATE_NOT_FOUND: 404,
    ApiErrorCode.E_CONNECTION_EXISTS: 409,
    ApiErrorCode.E_GUEST_NEXUS_LIMIT: 409,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_NAME_INVALID: 400,
    ApiErrorCode.E_INVALID_PARENT: 400,
    ApiErrorCode.E_AUTH_UNAVAILABLE: 503,
    ApiErrorCode.E_INTERNAL: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class ForbiddenError(ApiError):
    """Authorization failure error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_FORBIDDEN, message: str = "Forbidden"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)


class ConflictError(ApiError):
    """The request collides with existing state (duplicate connection, guest limit)."""

    def __init__(self, code: ApiErrorCode, message: str = "Conflict"):
        super().__init__(code, message)


class InsufficientShardsError(ApiError):
    """A debit would take the shard balance below zero.

    Attributes:
        balance: The balance at the time of the check.
        cost: The cost that was requested.
    """

    def __init__(self, balance: float, cost: float):
        self.balance = balance
        self.cost = cost
        super().__init__(ApiErrorCode.E_INSUFFICIENT_SHARDS, "Insufficient Shards")
