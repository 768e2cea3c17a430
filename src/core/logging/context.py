"""Log context propagated through contextvars.

Values set here follow the current asyncio task, so every job running in a
batch chunk logs with the invocation's correlation id.
"""

from contextvars import ContextVar
from typing import Dict, Optional

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_pipeline: ContextVar[Optional[str]] = ContextVar("pipeline", default=None)
_worker_id: ContextVar[Optional[str]] = ContextVar("worker_id", default=None)


def set_log_context(
    correlation_id: Optional[str] = None,
    pipeline: Optional[str] = None,
    worker_id: Optional[str] = None,
) -> None:
    """
    Set logging context values.

    Only arguments that are not None are applied; existing values are kept
    for the rest.
    """
    if correlation_id is not None:
        _correlation_id.set(correlation_id)
    if pipeline is not None:
        _pipeline.set(pipeline)
    if worker_id is not None:
        _worker_id.set(worker_id)


def get_log_context() -> Dict[str, Optional[str]]:
    """Get current logging context."""
    return {
        "correlation_id": _correlation_id.get(),
        "pipeline": _pipeline.get(),
        "worker_id": _worker_id.get(),
    }


def clear_log_context() -> None:
    """Reset all context values."""
    _correlation_id.set(None)
    _pipeline.set(None)
    _worker_id.set(None)
