"""
Logging helpers shared by the pipeline packages.

Provides structured logging functions, a method decorator and a mixin that
attaches a module logger to a class.
"""

import asyncio
import functools
import logging
from typing import Any, Callable, Dict, Optional, TypeVar

from core.logging.setup import get_logger

F = TypeVar("F", bound=Callable[..., Any])

MAX_ERROR_MESSAGE_LENGTH = 500


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Log with structured context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Additional context fields (job_id, duration_ms, etc.)

    Example:
        log_with_context(
            logger, logging.INFO, "Job completed",
            job_id=job.id,
            duration_ms=elapsed,
        )
    """
    logger.log(level, msg, extra=kwargs)


def _enum_value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log exception with context and optional traceback.

    Automatically extracts error_category, error_code and provider from
    ClassifiedError instances.

    Args:
        logger: Logger instance
        exc: Exception to log
        msg: Context message
        level: Log level (default: ERROR)
        include_traceback: Include full traceback (default: True)
        **kwargs: Additional context fields
    """
    for field, attr in (
        ("error_category", "category"),
        ("error_code", "code"),
        ("provider", "provider"),
        ("http_status", "http_status"),
    ):
        if kwargs.get(field) is None and getattr(exc, attr, None) is not None:
            kwargs[field] = _enum_value(getattr(exc, attr))

    error_msg = str(exc)
    if len(error_msg) > MAX_ERROR_MESSAGE_LENGTH:
        error_msg = error_msg[:MAX_ERROR_MESSAGE_LENGTH] + "..."
    kwargs["error_message"] = error_msg

    if include_traceback:
        logger.log(level, msg, exc_info=exc, extra=kwargs)
    else:
        logger.log(level, msg, extra=kwargs)


def _extract_instance_context(obj: Any) -> Dict[str, Any]:
    """Extract loggable identifier fields from instance attributes."""
    ctx: Dict[str, Any] = {}
    for attr, key in (("provider_name", "provider"), ("model", "model")):
        value = getattr(obj, attr, None)
        if value is not None:
            ctx[key] = value
    return ctx


def logged_operation(
    level: int = logging.DEBUG,
    log_start: bool = False,
    operation_name: Optional[str] = None,
) -> Callable[[F], F]:
    """
    Decorator for automatic operation logging on async class methods.

    Logs completion with duration and re-raises failures after logging them.

    Args:
        level: Log level for completion message
        log_start: Also log when operation starts
        operation_name: Override operation name (default: method_name)

    Example:
        class ReplicateBackgroundRemover(LoggedClass):
            @logged_operation(level=logging.DEBUG)
            async def run(self, image_url):
                ...
    """

    def decorator(func: F) -> F:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"logged_operation requires a coroutine function: {func.__name__}")

        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            _logger = getattr(self, "_logger", None) or get_logger(
                self.__class__.__module__
            )
            full_op = f"{self.__class__.__name__}.{operation_name or func.__name__}"
            loop = asyncio.get_running_loop()
            start = loop.time()

            if log_start:
                log_with_context(_logger, level, f"{full_op} starting")

            try:
                result = await func(self, *args, **kwargs)
            except Exception as e:
                log_exception(
                    _logger,
                    e,
                    f"{full_op} failed",
                    level=logging.WARNING,
                    include_traceback=False,
                    duration_ms=round((loop.time() - start) * 1000),
                )
                raise

            log_with_context(
                _logger,
                level,
                f"{full_op} completed",
                duration_ms=round((loop.time() - start) * 1000),
            )
            return result

        return wrapper  # type: ignore

    return decorator


class LoggedClass:
    """
    Mixin providing logging infrastructure for classes.

    Provides:
    - self._logger: Logger instance
    - self._log(): Log with auto-extracted context
    - self._log_exception(): Exception logging with context
    """

    log_component: Optional[str] = None  # Optional logger name suffix

    def __init__(self, *args, **kwargs):
        logger_name = self.__class__.__module__
        if self.log_component:
            logger_name = f"{logger_name}.{self.log_component}"
        self._logger = get_logger(logger_name)
        super().__init__(*args, **kwargs)

    def _log(self, level: int, msg: str, **extra: Any) -> None:
        """Log with automatic context extraction from instance."""
        context = _extract_instance_context(self)
        context.update(extra)
        log_with_context(self._logger, level, msg, **context)

    def _log_exception(
        self,
        exc: BaseException,
        msg: str,
        level: int = logging.ERROR,
        **extra: Any,
    ) -> None:
        """Log exception with automatic context extraction from instance."""
        context = {
            key: value
            for key, value in _extract_instance_context(self).items()
            if getattr(exc, key, None) is None
        }
        context.update(extra)
        log_exception(self._logger, exc, msg, level=level, **context)
