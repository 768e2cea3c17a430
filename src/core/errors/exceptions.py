"""
Error taxonomy and classification for background job processing.

Every error that reaches the job state machine is a ClassifiedError carrying
a category (transient or permanent), a normalized code and the provider that
raised it. Raw exceptions are converted with classify_exception().
"""

import asyncio
import copy
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

import aiohttp


class ErrorCategory(str, Enum):
    """
    Classification of error types for retry decisions.

    Categories:
        TRANSIENT: Conditions expected to resolve on retry
                   (timeouts, rate limits, 5xx, network errors)
        PERMANENT: Conditions that retrying cannot fix
                   (validation, missing input, unauthorized, unsupported format,
                   already claimed by another worker)
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"


class ErrorCode(str, Enum):
    """Normalized error codes, used both in flight and when persisted on jobs/items."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    UNSUPPORTED_FORMAT = "unsupported_format"
    PROVIDER_FAILED = "provider_failed"
    INVALID_JSON = "invalid_json"
    MISSING_IMAGE = "missing_image"
    CONFIG_ERROR = "config_error"
    UNKNOWN = "unknown"


class Provider(str, Enum):
    """Component that raised an error."""

    STORAGE = "storage"
    REPLICATE = "replicate"
    OPENAI = "openai"
    INTERNAL = "internal"


ProviderLike = Union[Provider, str]


class ClassifiedError(Exception):
    """
    Base exception for all classified pipeline errors.

    Attributes:
        message: Human-readable error description
        category: Transient or permanent
        code: Normalized error code
        provider: Component that raised the error
        http_status: HTTP status code when the error came from an HTTP response
        cause: Original exception if wrapping
    """

    category: ErrorCategory = ErrorCategory.TRANSIENT
    code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        provider: ProviderLike = Provider.INTERNAL,
        http_status: Optional[int] = None,
        cause: Optional[BaseException] = None,
        code: Optional[Union[ErrorCode, str]] = None,
        category: Optional[Union[ErrorCategory, str]] = None,
    ):
        self.message = message
        self.provider = Provider(provider)
        self.http_status = http_status
        self.cause = cause
        if code is not None:
            self.code = ErrorCode(code)
        if category is not None:
            self.category = ErrorCategory(category)
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        """Whether this error is worth retrying."""
        return self.category == ErrorCategory.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        """Classification fields, suitable for logging and persistence."""
        return {
            "category": self.category.value,
            "code": self.code.value,
            "provider": self.provider.value,
            "http_status": self.http_status,
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Transient Errors (Retry)
# =============================================================================


class TransientError(ClassifiedError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class RequestTimeoutError(TransientError):
    """Provider or storage call exceeded its timeout."""

    code = ErrorCode.TIMEOUT


class NetworkError(TransientError):
    """Connection failed (DNS, refused, reset)."""

    code = ErrorCode.NETWORK


class RateLimitedError(TransientError):
    """Rate limited (429) - should back off."""

    code = ErrorCode.RATE_LIMITED

    def __init__(
        self,
        message: str,
        provider: ProviderLike = Provider.INTERNAL,
        http_status: Optional[int] = None,
        cause: Optional[BaseException] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, provider=provider, http_status=http_status, cause=cause)
        self.retry_after = retry_after  # Seconds to wait if provided


class ServerError(TransientError):
    """Remote side failed (5xx)."""

    code = ErrorCode.SERVER_ERROR


# =============================================================================
# Permanent Errors (Don't Retry)
# =============================================================================


class PermanentError(ClassifiedError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


class UnauthorizedError(PermanentError):
    """Credentials rejected (401)."""

    code = ErrorCode.UNAUTHORIZED


class ForbiddenError(PermanentError):
    """Access denied (403)."""

    code = ErrorCode.FORBIDDEN


class NotFoundError(PermanentError):
    """Resource not found (404)."""

    code = ErrorCode.NOT_FOUND


class ValidationError(PermanentError):
    """Input or state validation failed."""

    code = ErrorCode.VALIDATION


class UnsupportedFormatError(PermanentError):
    """Input artifact cannot be decoded or processed."""

    code = ErrorCode.UNSUPPORTED_FORMAT


class ProviderFailedError(PermanentError):
    """Provider accepted the request but reported a failed run."""

    code = ErrorCode.PROVIDER_FAILED


class InvalidResponseError(PermanentError):
    """Provider returned a response that could not be parsed."""

    code = ErrorCode.INVALID_JSON


class MissingImageError(PermanentError):
    """Entity has no usable input image."""

    code = ErrorCode.MISSING_IMAGE


class ClaimConflictError(PermanentError):
    """Entity or job was claimed by another worker first."""

    code = ErrorCode.CONFIG_ERROR


class ConfigurationError(PermanentError):
    """Invalid or missing configuration."""

    code = ErrorCode.CONFIG_ERROR


# =============================================================================
# Error Classification Utilities
# =============================================================================


def classify_http_status(status_code: int) -> Tuple[ErrorCategory, ErrorCode]:
    """
    Classify HTTP status code into error category and code.

    Args:
        status_code: HTTP response status

    Returns:
        (category, code) tuple
    """
    if status_code == 429:
        return ErrorCategory.TRANSIENT, ErrorCode.RATE_LIMITED

    if status_code >= 500:
        return ErrorCategory.TRANSIENT, ErrorCode.SERVER_ERROR

    if status_code == 401:
        return ErrorCategory.PERMANENT, ErrorCode.UNAUTHORIZED

    if status_code == 403:
        return ErrorCategory.PERMANENT, ErrorCode.FORBIDDEN

    if status_code == 404:
        return ErrorCategory.PERMANENT, ErrorCode.NOT_FOUND

    if status_code >= 400:
        return ErrorCategory.PERMANENT, ErrorCode.VALIDATION

    return ErrorCategory.PERMANENT, ErrorCode.UNKNOWN


_STATUS_ERROR_CLASSES = {
    ErrorCode.RATE_LIMITED: RateLimitedError,
    ErrorCode.SERVER_ERROR: ServerError,
    ErrorCode.UNAUTHORIZED: UnauthorizedError,
    ErrorCode.FORBIDDEN: ForbiddenError,
    ErrorCode.NOT_FOUND: NotFoundError,
    ErrorCode.VALIDATION: ValidationError,
}


def error_for_status(
    status_code: int,
    message: str,
    provider: ProviderLike = Provider.INTERNAL,
    cause: Optional[BaseException] = None,
) -> ClassifiedError:
    """
    Build the ClassifiedError subclass matching an HTTP status.

    Args:
        status_code: HTTP response status
        message: Error description
        provider: Component that returned the status
        cause: Original exception, if any

    Returns:
        Classified error instance
    """
    category, code = classify_http_status(status_code)
    error_class = _STATUS_ERROR_CLASSES.get(code)
    if error_class is None:
        return PermanentError(
            message, provider=provider, http_status=status_code, cause=cause, code=code
        )
    return error_class(message, provider=provider, http_status=status_code, cause=cause)


def _extract_status(exc: BaseException) -> Optional[int]:
    """Return an HTTP status carried by the exception, if any."""
    for attr in ("status", "status_code", "http_status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool) and value >= 100:
            return value
    return None


_TIMEOUT_MARKERS = ("timeout", "timed out", "deadline", "abort")
_NETWORK_MARKERS = (
    "network",
    "econnrefused",
    "econnreset",
    "enotfound",
    "connection refused",
    "connection reset",
    "name resolution",
    "socket",
    "dns",
    "fetch failed",
)
_RATE_LIMIT_MARKERS = ("rate limit", "too many requests")
_UNSUPPORTED_MARKERS = ("unsupported", "invalid format", "invalid image")
_NOT_FOUND_MARKERS = ("not found", "does not exist")


def classify_exception(
    exc: BaseException, provider: ProviderLike = Provider.INTERNAL
) -> ClassifiedError:
    """
    Convert any exception into a ClassifiedError.

    Already classified errors are returned unchanged. Otherwise the HTTP
    status carried by the exception wins, then the exception type, then
    message sniffing. Unrecognised errors default to transient/unknown so
    work is retried a bounded number of times rather than silently dropped.

    Args:
        exc: Exception to classify
        provider: Component that raised it

    Returns:
        Classified error wrapping the original exception
    """
    if isinstance(exc, ClassifiedError):
        return exc

    message = str(exc) or type(exc).__name__

    status = _extract_status(exc)
    if status is not None:
        return error_for_status(status, message, provider=provider, cause=exc)

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return RequestTimeoutError(message, provider=provider, cause=exc)

    if isinstance(exc, (aiohttp.ClientConnectionError, ConnectionError)):
        return NetworkError(message, provider=provider, cause=exc)

    haystack = f"{type(exc).__name__} {message}".lower()

    if any(m in haystack for m in _TIMEOUT_MARKERS):
        return RequestTimeoutError(message, provider=provider, cause=exc)

    if any(m in haystack for m in _NETWORK_MARKERS):
        return NetworkError(message, provider=provider, cause=exc)

    if any(m in haystack for m in _RATE_LIMIT_MARKERS):
        return RateLimitedError(message, provider=provider, cause=exc)

    if any(m in haystack for m in _UNSUPPORTED_MARKERS):
        return UnsupportedFormatError(message, provider=provider, cause=exc)

    if any(m in haystack for m in _NOT_FOUND_MARKERS):
        return NotFoundError(message, provider=provider, cause=exc)

    return TransientError(message, provider=provider, cause=exc)


def wrap_exception(
    exc: BaseException,
    message: str,
    provider: ProviderLike = Provider.INTERNAL,
) -> ClassifiedError:
    """
    Classify an exception and prefix a context message.

    The returned error keeps the category, code, provider and HTTP status of
    the classification, so wrapping never changes the retry decision.

    Args:
        exc: Exception to wrap
        message: Context message, e.g. "Failed to download original"
        provider: Component that raised it (ignored if already classified)

    Returns:
        New ClassifiedError of the same class
    """
    classified = classify_exception(exc, provider=provider)
    wrapped = copy.copy(classified)
    wrapped.message = f"{message}: {classified.message}"
    wrapped.args = (wrapped.message,)
    return wrapped


def is_transient_error(exc: BaseException) -> bool:
    """Whether an exception would be retried."""
    return classify_exception(exc).is_transient
