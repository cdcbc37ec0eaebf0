"""
Core Package
"""
from tms.core.errors import (
    ApiError, Unauthorized, InvalidRequest, PermissionDenied, NotFound, Conflict,
    UpstreamFailure, QueryTimeout, DecryptionError, FeatureDisabled,
    LLMUnavailable, ImmutableRecordError
)
from tms.core.crypto import encrypt_value, decrypt_value, validate_encryption_key

__all__ = [
    # Errors
    "ApiError", "Unauthorized", "InvalidRequest", "PermissionDenied", "NotFound", "Conflict",
    "UpstreamFailure", "QueryTimeout", "DecryptionError", "FeatureDisabled",
    "LLMUnavailable", "ImmutableRecordError",
    # Crypto
    "encrypt_value", "decrypt_value", "validate_encryption_key",
]
