"""
Job table and item access for one pipeline.

Wraps the work item store with the pipeline's table and column names so the
executor, recovery scan and batch runner speak in JobRecord/EntityRecord.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from wardrobe_pipeline.pipelines.base import PipelineLayout
from wardrobe_pipeline.schemas.jobs import (
    EntityRecord,
    EntityStatus,
    JobRecord,
    JobStatus,
    to_iso,
    utc_now,
)
from wardrobe_pipeline.store import WorkItemStore, any_of, eq, in_, is_null, lt, lte


class JobQueue:
    """
    Layout-aware reads and writes over a WorkItemStore.

    Args:
        store: Backing store
        layout: Tables and columns of the pipeline
    """

    def __init__(self, store: WorkItemStore, layout: PipelineLayout):
        self.store = store
        self.layout = layout

    def _job(self, row: Dict[str, Any]) -> JobRecord:
        return JobRecord.from_row(row, source_column=self.layout.job_source_column)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_entity(self, item_id: str) -> Optional[EntityRecord]:
        row = await self.store.get(self.layout.items_table, item_id)
        if row is None:
            return None
        return EntityRecord.from_row(row, self.layout.status_column)

    async def get_job(self, job_id: Any) -> Optional[JobRecord]:
        row = await self.store.get(self.layout.jobs_table, job_id)
        return self._job(row) if row is not None else None

    async def fetch_due(self, limit: int, now: Optional[datetime] = None) -> List[JobRecord]:
        """Pending jobs whose retry time has passed, oldest first."""
        now = now or utc_now()
        rows = await self.store.query(
            self.layout.jobs_table,
            filters=[
                eq("status", JobStatus.PENDING.value),
                any_of(is_null("next_retry_at"), lte("next_retry_at", now)),
            ],
            order_by="created_at",
            ascending=True,
            limit=limit,
        )
        return [self._job(row) for row in rows]

    async def find_open_for_item(
        self, item_id: str, now: Optional[datetime] = None
    ) -> Optional[JobRecord]:
        """
        The job direct mode should go through for one item, if any.

        The oldest due pending job wins. Otherwise the oldest job still in
        backoff or in processing is returned, so the caller can see that the
        item's job is not yet eligible instead of bypassing it.
        """
        now = now or utc_now()
        rows = await self.store.query(
            self.layout.jobs_table,
            filters=[
                eq("item_id", item_id),
                in_("status", [JobStatus.PENDING.value, JobStatus.PROCESSING.value]),
            ],
            order_by="created_at",
            ascending=True,
        )
        jobs = [self._job(row) for row in rows]
        for job in jobs:
            if job.is_due(now):
                return job
        return jobs[0] if jobs else None

    async def fetch_stale(self, started_before: datetime) -> List[JobRecord]:
        """Processing jobs claimed before the cutoff."""
        rows = await self.store.query(
            self.layout.jobs_table,
            filters=[
                eq("status", JobStatus.PROCESSING.value),
                lt("started_at", started_before),
            ],
            order_by="started_at",
            ascending=True,
        )
        return [self._job(row) for row in rows]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def enqueue(
        self, item_id: str, source_key: str, max_attempts: int = 3
    ) -> Optional[JobRecord]:
        """
        Create a pending job unless one exists for (item_id, source_key).

        Returns:
            The new job, or None if it already existed
        """
        now = to_iso(utc_now())
        row = await self.store.insert_if_absent(
            self.layout.jobs_table,
            {
                "item_id": item_id,
                self.layout.job_source_column: source_key,
                "status": JobStatus.PENDING.value,
                "attempt_count": 0,
                "max_attempts": max_attempts,
                "created_at": now,
                "updated_at": now,
            },
            unique_on=("item_id", self.layout.job_source_column),
        )
        return self._job(row) if row is not None else None

    async def claim_entity(self, entity: EntityRecord) -> bool:
        """Move the item to processing if its status is still the one observed."""
        expected_status = entity.status.value if entity.status is not None else None
        rows = await self.store.conditional_update(
            self.layout.items_table,
            entity.id,
            {self.layout.status_column: EntityStatus.PROCESSING.value},
            expected={self.layout.status_column: expected_status},
        )
        return rows == 1

    async def release_entity(self, entity: EntityRecord) -> bool:
        """Undo claim_entity, only while the item is still processing."""
        if entity.status is None:
            return False
        rows = await self.store.conditional_update(
            self.layout.items_table,
            entity.id,
            {self.layout.status_column: entity.status.value},
            expected={self.layout.status_column: EntityStatus.PROCESSING.value},
        )
        return rows == 1

    async def claim_job(self, job: JobRecord, now: datetime) -> bool:
        """Move a pending job to processing and count the attempt."""
        rows = await self.store.conditional_update(
            self.layout.jobs_table,
            job.id,
            {
                "status": JobStatus.PROCESSING.value,
                "started_at": now,
                "attempt_count": job.attempt_count + 1,
                "updated_at": now,
            },
            expected={"status": JobStatus.PENDING.value, "attempt_count": job.attempt_count},
        )
        return rows == 1

    async def update_entity(
        self,
        item_id: str,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> int:
        return await self.store.conditional_update(
            self.layout.items_table, item_id, fields, expected=expected
        )

    async def update_job(
        self,
        job_id: Any,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> int:
        payload = dict(fields)
        payload.setdefault("updated_at", utc_now())
        return await self.store.conditional_update(
            self.layout.jobs_table, job_id, payload, expected=expected
        )
