"""
API error taxonomy

Every error raised by a route handler derives from ApiError and is turned
into a JSON envelope by the handlers registered in tms.main.
"""
from typing import Any, Dict, Optional


class ApiError(Exception):
    """Base class for errors that cross the API boundary."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"
    # AI routes answer with {success, error: {code, message}}
    nested: bool = False

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_response(self) -> Dict[str, Any]:
        if self.nested:
            return {
                "success": False,
                "error": {"code": self.code, "message": self.message, **self.extra},
            }
        body = {"success": False, "error": self.message}
        body.update({k: v for k, v in self.extra.items() if v is not None})
        return body


class Unauthorized(ApiError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class InvalidRequest(ApiError):
    status_code = 400
    code = "INVALID_REQUEST"
    default_message = "Invalid request"


class PermissionDenied(ApiError):
    status_code = 403
    code = "PERMISSION_DENIED"
    default_message = "Permission denied"


class NotFound(ApiError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class Conflict(ApiError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource already exists"


class UpstreamFailure(ApiError):
    """Oracle driver, network or target database failure."""

    status_code = 500
    code = "UPSTREAM_FAILURE"
    default_message = "Oracle query failed"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        offset: Optional[int] = None,
        **extra: Any
    ):
        super().__init__(message, error_code=error_code, offset=offset, **extra)
        self.error_code = error_code
        self.offset = offset


class QueryTimeout(UpstreamFailure):
    code = "QUERY_TIMEOUT"
    default_message = "Oracle query timed out"

    def __init__(self, message: Optional[str] = None, error_code: Optional[str] = None, **extra: Any):
        super().__init__(message, error_code=error_code, timeout=True, **extra)


class DecryptionError(ApiError):
    """Stored credential could not be decrypted."""

    status_code = 500
    code = "DECRYPTION_FAILED"
    default_message = "Failed to decrypt stored credential"


class FeatureDisabled(ApiError):
    status_code = 503
    code = "FEATURE_DISABLED"
    default_message = "This feature is disabled"
    nested = True

    def __init__(self, message: Optional[str] = None, fallback_available: bool = True):
        super().__init__(message, fallbackAvailable=fallback_available)


class LLMUnavailable(ApiError):
    status_code = 503
    code = "LLM_UNAVAILABLE"
    default_message = "LLM server is not reachable"
    nested = True

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None, **extra: Any):
        super().__init__(message, **extra)
        # LLM_TIMEOUT and LLM_RATE_LIMIT share the status and shape
        if code:
            self.code = code


class ImmutableRecordError(Exception):
    """Raised when a history record is modified after it was written."""
