"""
Claim-execute unit.

Processes one job (queue mode) or one item (direct mode):

1. Check eligibility of the job and its item
2. Claim the item, then the job, with compare-and-set updates
3. Run the pipeline
4. Finalize item and job as succeeded, retried or failed

Exactly one unit owns a claimed item; every other concurrent unit loses its
compare-and-set and backs off without side effects.
"""

import logging
import random
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from core.errors import (
    ClaimConflictError,
    ClassifiedError,
    ValidationError,
    classify_exception,
)
from core.logging import LoggedClass
from core.resilience import DEFAULT_BASE_DELAY_MS, DEFAULT_MAX_DELAY_MS, next_retry_at
from wardrobe_pipeline.jobs.queue import JobQueue
from wardrobe_pipeline.metrics import record_claim_conflict, record_job_outcome
from wardrobe_pipeline.pipelines.base import Pipeline
from wardrobe_pipeline.schemas.jobs import (
    EntityRecord,
    JobRecord,
    JobStatus,
    utc_now,
)
from wardrobe_pipeline.schemas.results import JobResult

MAX_LAST_ERROR_LENGTH = 500


class JobExecutor(LoggedClass):
    """
    Runs the claim, execute and finalize sequence for a pipeline.

    Args:
        queue: Layout-aware store access
        pipeline: Provider work for one item
        retry_base_delay_ms: Backoff base delay
        retry_max_delay_ms: Backoff cap
        clock: Source of the current UTC time
        rng: Random source for backoff jitter
    """

    log_component = "executor"

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

    @property
    def provider_name(self) -> str:
        return self.pipeline.provider_name

    @property
    def model(self) -> Optional[str]:
        return self.pipeline.model

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def process_job(self, job: JobRecord) -> JobResult:
        """Process one queued job. Never raises; failures are in the result."""
        start = time.perf_counter()
        now = self.clock()

        if not job.is_due(now):
            error = ValidationError(
                f"Job {job.id} is not eligible (status={job.status.value})"
            )
            self._log(
                logging.DEBUG,
                "Skipping ineligible job",
                job_id=job.id,
                item_id=job.item_id,
                status=job.status.value,
                next_retry_at=job.next_retry_at,
            )
            return self._result(job.item_id, job.id, start, error=error)

        try:
            entity = await self.queue.get_entity(job.item_id)
        except Exception as e:
            error = classify_exception(e)
            self._log_exception(
                error, "Failed to load item", level=logging.WARNING,
                job_id=job.id, item_id=job.item_id,
            )
            return self._result(job.item_id, job.id, start, error=error)

        if entity is None or not entity.is_eligible:
            error = self._ineligible_error(job.item_id, entity)
            await self._close_ineligible_job(job, error)
            record_job_outcome(self.pipeline_name, "failed", error_category=error.category.value)
            return self._result(job.item_id, job.id, start, error=error)

        try:
            await self._claim_entity(entity)
            await self._claim_job(entity, job, now)
        except ClassifiedError as error:
            return self._result(job.item_id, job.id, start, error=error)

        claimed = job.model_copy(
            update={
                "status": JobStatus.PROCESSING,
                "attempt_count": job.attempt_count + 1,
                "started_at": now,
            }
        )
        return await self._execute(entity, claimed, start)

    async def process_entity(self, item_id: str) -> JobResult:
        """
        Process one item without a job row.

        Failures are final in this mode: there is no job to carry a retry.
        """
        start = time.perf_counter()

        try:
            entity = await self.queue.get_entity(item_id)
        except Exception as e:
            error = classify_exception(e)
            self._log_exception(error, "Failed to load item", level=logging.WARNING, item_id=item_id)
            return self._result(item_id, None, start, error=error)

        if entity is None or not entity.is_eligible:
            error = self._ineligible_error(item_id, entity)
            self._log(logging.INFO, "Item not eligible for processing", item_id=item_id,
                      status=entity.status.value if entity and entity.status else None)
            return self._result(item_id, None, start, error=error)

        try:
            await self._claim_entity(entity)
        except ClassifiedError as error:
            return self._result(item_id, None, start, error=error)

        return await self._execute(entity, None, start)

    # -------------------------------------------------------------------------
    # Claim
    # -------------------------------------------------------------------------

    def _ineligible_error(
        self, item_id: str, entity: Optional[EntityRecord]
    ) -> ValidationError:
        if entity is None:
            return ValidationError(f"Item {item_id} not found")
        status = entity.status.value if entity.status else None
        return ValidationError(f"Item {item_id} is not eligible for processing (status={status})")

    async def _close_ineligible_job(self, job: JobRecord, error: ClassifiedError) -> None:
        """Fail a job whose item cannot be processed; the item is left alone."""
        fields = self._error_fields(error)
        fields.update(
            {
                "status": JobStatus.FAILED.value,
                "completed_at": self.clock(),
                "next_retry_at": None,
            }
        )
        try:
            await self.queue.update_job(
                job.id, fields, expected={"status": JobStatus.PENDING.value}
            )
        except Exception as e:
            self._log_exception(
                e, "Failed to close ineligible job", level=logging.WARNING,
                job_id=job.id, item_id=job.item_id,
            )
        self._log(
            logging.INFO,
            "Closed job for ineligible item",
            job_id=job.id,
            item_id=job.item_id,
            error_message=error.message,
        )

    async def _claim_entity(self, entity: EntityRecord) -> None:
        try:
            claimed = await self.queue.claim_entity(entity)
        except Exception as e:
            error = classify_exception(e)
            self._log_exception(error, "Failed to claim item", level=logging.WARNING,
                                item_id=entity.id)
            raise error from e

        if not claimed:
            record_claim_conflict(self.pipeline_name, "entity")
            self._log(logging.INFO, "Item already claimed", item_id=entity.id)
            raise ClaimConflictError(f"Item {entity.id} was claimed by another worker")

    async def _claim_job(self, entity: EntityRecord, job: JobRecord, now: datetime) -> None:
        try:
            claimed = await self.queue.claim_job(job, now)
        except Exception as e:
            error = classify_exception(e)
            self._log_exception(error, "Failed to claim job", level=logging.WARNING,
                                job_id=job.id, item_id=entity.id)
            await self._release_entity(entity)
            raise error from e

        if not claimed:
            record_claim_conflict(self.pipeline_name, "job")
            self._log(logging.INFO, "Job already claimed", job_id=job.id, item_id=entity.id)
            await self._release_entity(entity)
            raise ClaimConflictError(f"Job {job.id} was claimed by another worker")

    async def _release_entity(self, entity: EntityRecord) -> None:
        try:
            await self.queue.release_entity(entity)
        except Exception as e:
            self._log_exception(e, "Failed to release item claim", level=logging.WARNING,
                                item_id=entity.id)

    # -------------------------------------------------------------------------
    # Execute and finalize
    # -------------------------------------------------------------------------

    async def _execute(
        self, entity: EntityRecord, job: Optional[JobRecord], start: float
    ) -> JobResult:
        started_at = self.clock()
        try:
            result = await self.pipeline.execute(entity, job)
            await self.queue.update_entity(entity.id, self.pipeline.success_fields(result))
        except Exception as e:
            error = classify_exception(e, provider=self.pipeline.provider_name)
            return await self._finalize_failure(entity, job, error, start, started_at)
        return await self._finalize_success(entity, job, start, started_at)

    async def _finalize_success(
        self,
        entity: EntityRecord,
        job: Optional[JobRecord],
        start: float,
        started_at: datetime,
    ) -> JobResult:
        completed_at = self.clock()
        duration_ms = self._elapsed_ms(start)

        if job is not None:
            try:
                await self.queue.update_job(
                    job.id,
                    {
                        "status": JobStatus.COMPLETED.value,
                        "completed_at": completed_at,
                        "next_retry_at": None,
                        "processing_duration_ms": duration_ms,
                        "last_error": None,
                        "error_category": None,
                        "error_code": None,
                        "error_provider": None,
                    },
                )
            except Exception as e:
                self._log_exception(
                    e, "Failed to mark job completed", level=logging.WARNING,
                    job_id=job.id, item_id=entity.id,
                )

        record_job_outcome(self.pipeline_name, "succeeded", duration_seconds=duration_ms / 1000)
        self._log_summary(entity, job, started_at, completed_at, duration_ms, "succeeded")
        return self._result(entity.id, job.id if job else None, start)

    async def _finalize_failure(
        self,
        entity: EntityRecord,
        job: Optional[JobRecord],
        error: ClassifiedError,
        start: float,
        started_at: datetime,
    ) -> JobResult:
        will_retry = (
            job is not None and error.is_transient and job.attempt_count < job.max_attempts
        )
        completed_at = self.clock()
        duration_ms = self._elapsed_ms(start)

        try:
            await self.queue.update_entity(
                entity.id, self.pipeline.failure_fields(error, will_retry)
            )
        except Exception as e:
            self._log_exception(
                e, "Failed to record item failure", level=logging.WARNING, item_id=entity.id
            )

        retry_at = None
        if job is not None:
            fields: Dict[str, Any] = self._error_fields(error)
            fields["processing_duration_ms"] = duration_ms
            if will_retry:
                # Exponent is the attempt count before this claim
                retry_at = next_retry_at(
                    max(0, job.attempt_count - 1),
                    self.retry_base_delay_ms,
                    self.retry_max_delay_ms,
                    now=completed_at,
                    rng=self.rng,
                )
                fields.update(
                    {
                        "status": JobStatus.PENDING.value,
                        "next_retry_at": retry_at,
                        "completed_at": None,
                    }
                )
            else:
                fields.update(
                    {
                        "status": JobStatus.FAILED.value,
                        "next_retry_at": None,
                        "completed_at": completed_at,
                    }
                )
            try:
                await self.queue.update_job(job.id, fields)
            except Exception as e:
                self._log_exception(
                    e, "Failed to record job failure", level=logging.WARNING,
                    job_id=job.id, item_id=entity.id,
                )

        status = "retry" if will_retry else "failed"
        record_job_outcome(
            self.pipeline_name,
            status,
            duration_seconds=duration_ms / 1000,
            error_category=error.category.value,
        )
        self._log_exception(
            error,
            "Job attempt failed, will retry" if will_retry else "Job failed",
            level=logging.WARNING if will_retry else logging.ERROR,
            include_traceback=False,
            job_id=job.id if job else None,
            item_id=entity.id,
            attempt_count=job.attempt_count if job else None,
            max_attempts=job.max_attempts if job else None,
            will_retry=will_retry,
            next_retry_at=retry_at,
        )
        self._log_summary(entity, job, started_at, completed_at, duration_ms, status, error)
        return self._result(entity.id, job.id if job else None, start, error=error)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _error_fields(error: ClassifiedError) -> Dict[str, Any]:
        last_error = str(error)
        if len(last_error) > MAX_LAST_ERROR_LENGTH:
            last_error = last_error[:MAX_LAST_ERROR_LENGTH] + "..."
        return {
            "last_error": last_error,
            "error_category": error.category.value,
            "error_code": error.code.value,
            "error_provider": error.provider.value,
        }

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return max(0, round((time.perf_counter() - start) * 1000))

    def _result(
        self,
        item_id: str,
        job_id: Any,
        start: float,
        error: Optional[ClassifiedError] = None,
    ) -> JobResult:
        if error is None:
            return JobResult(
                item_id=item_id, job_id=job_id, success=True,
                duration_ms=self._elapsed_ms(start),
            )
        return JobResult(
            item_id=item_id,
            job_id=job_id,
            success=False,
            duration_ms=self._elapsed_ms(start),
            error=str(error),
            error_code=error.code.value,
            error_category=error.category.value,
        )

    def _log_summary(
        self,
        entity: EntityRecord,
        job: Optional[JobRecord],
        started_at: datetime,
        completed_at: datetime,
        duration_ms: int,
        status: str,
        error: Optional[ClassifiedError] = None,
    ) -> None:
        self._log(
            logging.INFO,
            "Item processing summary",
            item_id=entity.id,
            job_id=job.id if job else None,
            user_id=entity.user_id,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=duration_ms,
            status=status,
            error_code=error.code.value if error else None,
        )
