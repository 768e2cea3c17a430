"""
Stale job recovery.

A worker that dies mid-attempt leaves its job in processing forever. The scan
finds jobs claimed longer ago than the stale threshold and hands them back to
the queue (or fails them once attempts are exhausted), resetting the item.
"""

import logging
import random
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from core.errors import ErrorCategory, ErrorCode, Provider, classify_exception
from core.logging import LoggedClass
from core.resilience import DEFAULT_BASE_DELAY_MS, DEFAULT_MAX_DELAY_MS, next_retry_at
from wardrobe_pipeline.jobs.queue import JobQueue
from wardrobe_pipeline.metrics import record_stale_recovery
from wardrobe_pipeline.pipelines.base import Pipeline
from wardrobe_pipeline.schemas.jobs import JobRecord, JobStatus, utc_now
from wardrobe_pipeline.schemas.results import JobResult, RunResult


class StaleJobRecovery(LoggedClass):
    """
    Resets jobs stuck in processing.

    Each reset is conditional on the job still being in processing with the
    started_at the scan observed, so a job that finished (or was reclaimed)
    in the meantime is left alone.
    """

    log_component = "recovery"

    def __init__(
        self,
        queue: JobQueue,
        pipeline: Pipeline,
        retry_base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        retry_max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
    ):
        self.queue = queue
        self.pipeline = pipeline
        self.retry_base_delay_ms = retry_base_delay_ms
        self.retry_max_delay_ms = retry_max_delay_ms
        self.clock = clock
        self.rng = rng
        super().__init__()

    @property
    def pipeline_name(self) -> str:
        return self.pipeline.layout.name

    async def recover(self, threshold_ms: int) -> RunResult:
        """
        Reset every job in processing for longer than threshold_ms.

        Returns:
            RunResult with `recovered` set; one result per job reset, with
            success=True when the job will be retried
        """
        now = self.clock()
        cutoff = now - timedelta(milliseconds=threshold_ms)
        try:
            stale = await self.queue.fetch_stale(cutoff)
        except Exception as e:
            self._log_exception(classify_exception(e), "Failed to query stale jobs",
                                threshold_ms=threshold_ms)
            return RunResult(recovered=0)

        results: List[JobResult] = []
        for job in stale:
            result = await self._recover_job(job, now, threshold_ms)
            if result is not None:
                results.append(result)

        self._log(
            logging.INFO if results else logging.DEBUG,
            "Stale job scan complete",
            threshold_ms=threshold_ms,
            records_processed=len(stale),
            records_recovered=len(results),
        )
        return RunResult(recovered=len(results), results=results)

    async def _recover_job(
        self, job: JobRecord, now: datetime, threshold_ms: int
    ) -> Optional[JobResult]:
        will_retry = job.attempt_count < job.max_attempts
        category = ErrorCategory.TRANSIENT if will_retry else ErrorCategory.PERMANENT
        message = f"Job stuck in processing for more than {threshold_ms}ms"

        fields = {
            "last_error": message,
            "error_category": category.value,
            "error_code": ErrorCode.TIMEOUT.value,
            "error_provider": Provider.INTERNAL.value,
        }
        retry_at = None
        if will_retry:
            retry_at = next_retry_at(
                max(0, job.attempt_count - 1),
                self.retry_base_delay_ms,
                self.retry_max_delay_ms,
                now=now,
                rng=self.rng,
            )
            fields.update(
                {"status": JobStatus.PENDING.value, "next_retry_at": retry_at, "completed_at": None}
            )
        else:
            fields.update(
                {"status": JobStatus.FAILED.value, "next_retry_at": None, "completed_at": now}
            )

        try:
            rows = await self.queue.update_job(
                job.id,
                fields,
                expected={"status": JobStatus.PROCESSING.value, "started_at": job.started_at},
            )
        except Exception as e:
            self._log_exception(e, "Failed to reset stale job", level=logging.WARNING,
                                job_id=job.id, item_id=job.item_id)
            return None

        if rows == 0:
            self._log(logging.DEBUG, "Stale job changed before reset", job_id=job.id,
                      item_id=job.item_id)
            return None

        try:
            await self.queue.update_entity(job.item_id, self.pipeline.reset_fields(will_retry))
        except Exception as e:
            self._log_exception(e, "Failed to reset item of stale job", level=logging.WARNING,
                                job_id=job.id, item_id=job.item_id)

        record_stale_recovery(self.pipeline_name, will_retry)
        self._log(
            logging.WARNING,
            "Recovered stale job",
            job_id=job.id,
            item_id=job.item_id,
            started_at=job.started_at,
            attempt_count=job.attempt_count,
            max_attempts=job.max_attempts,
            will_retry=will_retry,
            next_retry_at=retry_at,
        )
        return JobResult(
            item_id=job.item_id,
            job_id=job.id,
            success=will_retry,
            error=message,
            error_code=ErrorCode.TIMEOUT.value,
            error_category=category.value,
        )
