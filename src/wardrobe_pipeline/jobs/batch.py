"""
Batch runner.

Polls the job table for due jobs and runs them through the claim-execute
unit in consecutive chunks of max_concurrency, each chunk awaited with
asyncio.gather() before the next one starts.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

from core.errors import ValidationError, classify_exception
from core.logging import LoggedClass
from wardrobe_pipeline.jobs.executor import JobExecutor
from wardrobe_pipeline.jobs.queue import JobQueue
from wardrobe_pipeline.metrics import update_batch_chunk_size
from wardrobe_pipeline.schemas.jobs import JobRecord, utc_now
from wardrobe_pipeline.schemas.results import JobResult, RunResult

DEFAULT_BATCH_SIZE_CAP = 10
DEFAULT_MAX_CONCURRENCY = 5


class BatchRunner(LoggedClass):
    """
    Processes up to batch_size_cap due jobs per run.

    Args:
        queue: Layout-aware store access
        executor: Claim-execute unit
        batch_size_cap: Upper bound on jobs per run
        max_concurrency: Default chunk size
        clock: Source of the current UTC time
    """

    log_component = "batch"

    def __init__(
        self,
        queue: JobQueue,
        executor: JobExecutor,
        batch_size_cap: int = DEFAULT_BATCH_SIZE_CAP,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.queue = queue
        self.executor = executor
        self.batch_size_cap = batch_size_cap
        self.max_concurrency = max_concurrency
        self.clock = clock
        super().__init__()

    @property
    def pipeline_name(self) -> str:
        return self.executor.pipeline_name

    async def run(
        self,
        batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
    ) -> RunResult:
        """
        Poll and process one batch of due jobs.

        Args:
            batch_size: Jobs to process (capped at batch_size_cap)
            max_concurrency: Jobs processed concurrently per chunk

        Returns:
            RunResult with processed/failed counts and one result per job

        Raises:
            ValidationError: batch_size is given and less than 1
        """
        if batch_size is not None and batch_size < 1:
            raise ValidationError(f"batch_size must be at least 1, got {batch_size}")
        limit = min(batch_size or self.batch_size_cap, self.batch_size_cap)
        chunk_size = max(1, max_concurrency or self.max_concurrency)

        try:
            jobs = await self.queue.fetch_due(limit, now=self.clock())
        except Exception as e:
            self._log_exception(classify_exception(e), "Failed to poll due jobs",
                                batch_size=limit)
            return RunResult()

        if not jobs:
            self._log(logging.DEBUG, "No due jobs", batch_size=limit)
            return RunResult()

        self._log(
            logging.INFO,
            "Processing batch",
            batch_size=len(jobs),
            max_concurrency=chunk_size,
        )

        results: List[JobResult] = []
        for chunk_index, start in enumerate(range(0, len(jobs), chunk_size)):
            chunk = jobs[start:start + chunk_size]
            results.extend(await self._process_chunk(chunk, chunk_index))

        run_result = RunResult.from_results(results)
        self._log(
            logging.INFO,
            "Batch processing complete",
            batch_size=len(jobs),
            records_succeeded=run_result.processed,
            records_failed=run_result.failed,
        )
        return run_result

    async def _process_chunk(self, chunk: List[JobRecord], chunk_index: int) -> List[JobResult]:
        update_batch_chunk_size(self.pipeline_name, len(chunk))
        self._log(logging.DEBUG, "Processing chunk", chunk_index=chunk_index,
                  chunk_size=len(chunk))
        try:
            outcomes = await asyncio.gather(
                *(self.executor.process_job(job) for job in chunk),
                return_exceptions=True,
            )
        finally:
            update_batch_chunk_size(self.pipeline_name, 0)

        results: List[JobResult] = []
        for job, outcome in zip(chunk, outcomes):
            if isinstance(outcome, BaseException):
                error = classify_exception(outcome)
                self._log_exception(
                    outcome, "Unhandled exception processing job",
                    job_id=job.id, item_id=job.item_id,
                )
                results.append(
                    JobResult(
                        item_id=job.item_id,
                        job_id=job.id,
                        success=False,
                        error=str(error),
                        error_code=error.code.value,
                        error_category=error.category.value,
                    )
                )
            else:
                results.append(outcome)
        return results
