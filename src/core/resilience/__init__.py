"""
Resilience patterns module.

Provides retry scheduling primitives for background job processing:
    - next_retry_delay: Exponential backoff with symmetric jitter
    - next_retry_at: Absolute timestamp for the next attempt
"""

from core.resilience.backoff import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_MAX_DELAY_MS,
    JITTER_RATIO,
    next_retry_at,
    next_retry_delay,
)

__all__ = [
    "DEFAULT_BASE_DELAY_MS",
    "DEFAULT_MAX_DELAY_MS",
    "JITTER_RATIO",
    "next_retry_at",
    "next_retry_delay",
]
