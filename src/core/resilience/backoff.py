"""
Exponential backoff with jitter.

Failed jobs are rescheduled with a delay that doubles per attempt, is capped
at a maximum, and is spread by +/-25% so that many jobs failing together do
not all come back at the same instant.
"""

import math
import random
from datetime import datetime, timedelta, timezone
from typing import Optional

DEFAULT_BASE_DELAY_MS = 1000  # 1 second
DEFAULT_MAX_DELAY_MS = 60000  # 1 minute
JITTER_RATIO = 0.25


def next_retry_delay(
    attempt_count: int,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Calculate retry delay in milliseconds.

    delay = min(base * 2^attempt, max) * (1 + 0.25 * u), u uniform in [-1, 1],
    rounded to the nearest millisecond and clamped to the jitter band.

    Args:
        attempt_count: Attempts made so far (>= 0)
        base_delay_ms: Delay for attempt 0
        max_delay_ms: Cap applied before jitter
        rng: Random source (module random if not given)

    Returns:
        Delay in milliseconds, within [0.75 * capped, 1.25 * capped]
    """
    if attempt_count < 0:
        raise ValueError(f"attempt_count must be >= 0, got {attempt_count}")
    if base_delay_ms < 0 or max_delay_ms < 0:
        raise ValueError("Backoff delays must be non-negative")

    # Compare exponents first so huge attempt counts never build huge ints
    if base_delay_ms == 0:
        capped = 0.0
    elif attempt_count >= 64 or base_delay_ms * (2 ** attempt_count) >= max_delay_ms:
        capped = float(max_delay_ms)
    else:
        capped = float(base_delay_ms * (2 ** attempt_count))

    source = rng or random
    jitter = capped * JITTER_RATIO * (source.random() * 2 - 1)
    delay = round(capped + jitter)

    low = math.ceil(capped * (1 - JITTER_RATIO))
    high = math.floor(capped * (1 + JITTER_RATIO))
    return int(min(max(delay, low), high))


def next_retry_at(
    attempt_count: int,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> datetime:
    """
    Calculate the UTC timestamp of the next attempt.

    Args:
        attempt_count: Attempts made so far
        base_delay_ms: Delay for attempt 0
        max_delay_ms: Cap applied before jitter
        now: Reference time (default: current UTC time)
        rng: Random source

    Returns:
        now + next_retry_delay(...)
    """
    now = now or datetime.now(timezone.utc)
    delay_ms = next_retry_delay(attempt_count, base_delay_ms, max_delay_ms, rng=rng)
    return now + timedelta(milliseconds=delay_ms)
