"""
Prometheus metrics for background job monitoring.

Provides instrumentation for:
- Job outcomes by pipeline and error category
- Processing time histograms
- Stale job recovery
- Claim conflicts between workers
- Batch chunk sizes
"""

from typing import Optional

from prometheus_client import Counter, Gauge, Histogram

# Job outcome metrics
jobs_processed_total = Counter(
    "wardrobe_jobs_processed_total",
    "Total number of job attempts by outcome",
    ["pipeline", "status", "error_category"],  # status: succeeded, retry, failed, skipped
)

job_processing_duration_seconds = Histogram(
    "wardrobe_job_processing_duration_seconds",
    "Time spent processing individual jobs",
    ["pipeline"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0),
)

# Recovery metrics
stale_jobs_recovered_total = Counter(
    "wardrobe_stale_jobs_recovered_total",
    "Total number of stale jobs reset by the recovery scan",
    ["pipeline", "outcome"],  # outcome: retry, failed
)

# Concurrency metrics
claim_conflicts_total = Counter(
    "wardrobe_claim_conflicts_total",
    "Total number of claims lost to another worker",
    ["pipeline", "target"],  # target: entity, job
)

batch_chunk_size = Gauge(
    "wardrobe_batch_chunk_size",
    "Number of jobs in the chunk currently being processed",
    ["pipeline"],
)


def record_job_outcome(
    pipeline: str,
    status: str,
    duration_seconds: Optional[float] = None,
    error_category: Optional[str] = None,
) -> None:
    """
    Record the outcome of one job attempt.

    Args:
        pipeline: Pipeline name
        status: succeeded, retry, failed or skipped
        duration_seconds: Attempt duration, if measured
        error_category: transient or permanent for failures
    """
    jobs_processed_total.labels(
        pipeline=pipeline, status=status, error_category=error_category or "none"
    ).inc()
    if duration_seconds is not None:
        job_processing_duration_seconds.labels(pipeline=pipeline).observe(duration_seconds)


def record_stale_recovery(pipeline: str, will_retry: bool) -> None:
    """Record a stale job reset by the recovery scan."""
    stale_jobs_recovered_total.labels(
        pipeline=pipeline, outcome="retry" if will_retry else "failed"
    ).inc()


def record_claim_conflict(pipeline: str, target: str) -> None:
    """
    Record a lost claim.

    Args:
        pipeline: Pipeline name
        target: entity or job
    """
    claim_conflicts_total.labels(pipeline=pipeline, target=target).inc()


def update_batch_chunk_size(pipeline: str, size: int) -> None:
    """Set the size of the chunk in flight (0 when idle)."""
    batch_chunk_size.labels(pipeline=pipeline).set(size)
