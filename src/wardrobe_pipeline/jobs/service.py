"""
Pipeline service: the operations exposed to callers.

    process_one(item_id)      direct mode, one item
    run_batch(batch_size)     queue mode, due jobs
    recover_stale()           reset jobs stuck in processing
    invoke(request)           the three combined, as one invocation

Every operation returns a RunResult; per-job failures are reported inside it
and never raised.
"""

import logging
import random
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from core.errors import MissingImageError, ValidationError, classify_exception
from core.logging import LoggedClass, generate_correlation_id, get_log_context, set_log_context
from wardrobe_pipeline.config import PipelineConfig
from wardrobe_pipeline.jobs.batch import BatchRunner
from wardrobe_pipeline.jobs.executor import JobExecutor
from wardrobe_pipeline.jobs.queue import JobQueue
from wardrobe_pipeline.jobs.recovery import StaleJobRecovery
from wardrobe_pipeline.metrics import record_job_outcome
from wardrobe_pipeline.pipelines.base import Pipeline
from wardrobe_pipeline.schemas.jobs import EntityStatus, JobRecord, utc_now
from wardrobe_pipeline.schemas.results import InvocationRequest, JobResult, RunResult
from wardrobe_pipeline.store import WorkItemStore


class PipelineService(LoggedClass):
    """
    Entry point for one pipeline.

    Args:
        config: Pipeline configuration (timings, caps, enabled flag)
        store: Work item store
        pipeline: Provider work for one item
        resources: Objects with an async close() released by close()
        clock: Source of the current UTC time
        rng: Random source for backoff jitter

    Example:
        async with create_service(config) as service:
            result = await service.invoke(InvocationRequest(batch_size=5))
    """

    log_component = "service"

    def __init__(
        self,
        config: PipelineConfig,
        store: WorkItemStore,
        pipeline: Pipeline,
        resources: Sequence[Any] = (),
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.pipeline = pipeline
        self.queue = JobQueue(store, pipeline.layout)
        self.executor = JobExecutor(
            self.queue,
            pipeline,
            retry_base_delay_ms=config.retry_base_delay_ms,
            retry_max_delay_ms=config.retry_max_delay_ms,
            clock=clock,
            rng=rng,
        )
        self.recovery = StaleJobRecovery(
            self.queue,
            pipeline,
            retry_base_delay_ms=config.retry_base_delay_ms,
            retry_max_delay_ms=config.retry_max_delay_ms,
            clock=clock,
            rng=rng,
        )
        self.batch = BatchRunner(
            self.queue,
            self.executor,
            batch_size_cap=config.batch_size_cap,
            max_concurrency=config.max_concurrency,
            clock=clock,
        )
        self.clock = clock
        self._resources = list(resources)
        super().__init__()

    @property
    def pipeline_name(self) -> str:
        return self.pipeline.layout.name

    async def __aenter__(self) -> "PipelineService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Release provider sessions."""
        for resource in self._resources:
            try:
                await resource.close()
            except Exception as e:
                self._log_exception(e, "Error closing resource", level=logging.WARNING)
        self._resources.clear()

    def _bind_context(self, correlation_id: Optional[str] = None) -> str:
        correlation_id = (
            correlation_id or get_log_context()["correlation_id"] or generate_correlation_id()
        )
        set_log_context(correlation_id=correlation_id, pipeline=self.pipeline_name)
        return correlation_id

    # -------------------------------------------------------------------------
    # Exposed operations
    # -------------------------------------------------------------------------

    async def process_one(self, item_id: str, correlation_id: Optional[str] = None) -> RunResult:
        """
        Process a single item.

        When the item has an open job, the item goes through it so retries and
        the job row stay paired with the item. A job still in backoff or in
        processing is reported as not eligible and nothing is mutated. Without
        a job the item is processed directly and a failure is final.
        """
        correlation_id = self._bind_context(correlation_id)

        if not self.config.enabled:
            return await self._skip(item_id, correlation_id)

        job: Optional[JobRecord] = None
        try:
            job = await self.queue.find_open_for_item(item_id, now=self.clock())
        except Exception as e:
            self._log_exception(
                classify_exception(e), "Failed to look up job for item",
                level=logging.WARNING, item_id=item_id,
            )

        if job is not None:
            result = await self.executor.process_job(job)
        else:
            result = await self.executor.process_entity(item_id)
        return RunResult.from_results([result], correlation_id=correlation_id)

    async def run_batch(
        self,
        batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        correlation_id: Optional[str] = None,
    ) -> RunResult:
        """Process up to batch_size due jobs (capped at batch_size_cap)."""
        correlation_id = self._bind_context(correlation_id)

        if not self.config.enabled:
            self._log(logging.INFO, "Pipeline disabled, skipping queue run")
            return RunResult(correlation_id=correlation_id)

        result = await self.batch.run(batch_size, max_concurrency)
        return result.model_copy(update={"correlation_id": correlation_id})

    async def recover_stale(
        self, threshold_ms: Optional[int] = None, correlation_id: Optional[str] = None
    ) -> RunResult:
        """Reset jobs in processing for longer than threshold_ms (default from config)."""
        correlation_id = self._bind_context(correlation_id)

        if not self.config.enabled:
            self._log(logging.INFO, "Pipeline disabled, skipping stale recovery")
            return RunResult(recovered=0, correlation_id=correlation_id)

        result = await self.recovery.recover(threshold_ms or self.config.stale_threshold_ms)
        return result.model_copy(update={"correlation_id": correlation_id})

    async def invoke(
        self, request: InvocationRequest, correlation_id: Optional[str] = None
    ) -> RunResult:
        """
        Run one invocation.

        Stale recovery runs first when requested. Then the item is processed
        directly when item_id is set, otherwise a queue batch runs. A pure
        recovery request (no item_id, no batch_size) stops after recovery.
        """
        correlation_id = self._bind_context(correlation_id)
        self._log(
            logging.INFO,
            "Invocation started",
            item_id=request.item_id,
            batch_size=request.batch_size,
            operation="recover_stale" if request.recover_stale else None,
        )

        result: Optional[RunResult] = None
        if request.recover_stale:
            result = await self.recover_stale(correlation_id=correlation_id)
            if request.item_id is None and request.batch_size is None:
                return result

        if request.item_id is not None:
            work = await self.process_one(request.item_id, correlation_id=correlation_id)
        else:
            work = await self.run_batch(request.batch_size, correlation_id=correlation_id)

        return result.merge(work) if result is not None else work

    async def enqueue(self, item_id: str) -> Optional[JobRecord]:
        """
        Queue a job for an item, keyed by its current input artifact.

        Returns:
            The new job, or None if one already exists for that artifact

        Raises:
            ValidationError: Item does not exist
            MissingImageError: Item has no input artifact
        """
        entity = await self.queue.get_entity(item_id)
        if entity is None:
            raise ValidationError(f"Item {item_id} not found")
        source_key = self.pipeline.source_key(entity)
        if not source_key:
            raise MissingImageError(f"Item {item_id} has no image to process")
        job = await self.queue.enqueue(item_id, source_key, max_attempts=self.config.max_attempts)
        self._log(
            logging.INFO if job else logging.DEBUG,
            "Job enqueued" if job else "Job already queued",
            item_id=item_id,
            job_id=job.id if job else None,
            source_key=source_key,
        )
        return job

    # -------------------------------------------------------------------------
    # Disabled pipeline
    # -------------------------------------------------------------------------

    async def _skip(self, item_id: str, correlation_id: str) -> RunResult:
        """Mark a pending item skipped; leave items in any other state alone."""
        status_column = self.pipeline.layout.status_column
        try:
            await self.queue.update_entity(
                item_id,
                {status_column: EntityStatus.SKIPPED.value},
                expected={status_column: EntityStatus.PENDING.value},
            )
        except Exception as e:
            self._log_exception(
                classify_exception(e), "Failed to mark item skipped",
                level=logging.WARNING, item_id=item_id,
            )

        record_job_outcome(self.pipeline_name, "skipped")
        self._log(logging.INFO, "Pipeline disabled, item skipped", item_id=item_id)
        return RunResult.from_results(
            [JobResult(item_id=item_id, success=True, skipped=True)],
            correlation_id=correlation_id,
        )
