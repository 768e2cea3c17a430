"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory / ErrorCode / Provider enums
- ClassifiedError hierarchy for typed exceptions
- Classification utilities for error handling
"""

from core.errors.exceptions import (
    # Enums
    ErrorCategory,
    ErrorCode,
    Provider,
    # Base classes
    ClassifiedError,
    TransientError,
    PermanentError,
    # Transient errors
    RequestTimeoutError,
    NetworkError,
    RateLimitedError,
    ServerError,
    # Permanent errors
    UnauthorizedError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    UnsupportedFormatError,
    ProviderFailedError,
    InvalidResponseError,
    MissingImageError,
    ClaimConflictError,
    ConfigurationError,
    # Classification utilities
    classify_http_status,
    classify_exception,
    error_for_status,
    is_transient_error,
    wrap_exception,
)

__all__ = [
    # Enums
    "ErrorCategory",
    "ErrorCode",
    "Provider",
    # Base classes
    "ClassifiedError",
    "TransientError",
    "PermanentError",
    # Transient errors
    "RequestTimeoutError",
    "NetworkError",
    "RateLimitedError",
    "ServerError",
    # Permanent errors
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ValidationError",
    "UnsupportedFormatError",
    "ProviderFailedError",
    "InvalidResponseError",
    "MissingImageError",
    "ClaimConflictError",
    "ConfigurationError",
    # Classification utilities
    "classify_http_status",
    "classify_exception",
    "error_for_status",
    "is_transient_error",
    "wrap_exception",
]
