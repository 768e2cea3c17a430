"""
Pipeline contract for the claim-execute unit.

A pipeline describes where its state lives (status column, result columns,
job table) and runs the provider work for one claimed item. The job state
machine itself is pipeline-agnostic.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from core.errors import ClassifiedError
from wardrobe_pipeline.schemas.jobs import EntityRecord, EntityStatus, JobRecord


@dataclass(frozen=True)
class PipelineLayout:
    """Tables and columns a pipeline reads and writes.

    Attributes:
        name: Pipeline name used in logs and metrics
        items_table: Table holding wardrobe items
        jobs_table: Table holding the pipeline's jobs
        status_column: Item column tracking this pipeline's status
        result_columns: Item columns only set while status is succeeded
        job_source_column: Job column holding the input artifact key
    """

    name: str
    items_table: str
    jobs_table: str
    status_column: str
    result_columns: Tuple[str, ...]
    job_source_column: str = "source_key"


class Pipeline(ABC):
    """Provider-specific work for one item."""

    layout: PipelineLayout
    provider_name: str = "internal"
    model: Optional[str] = None

    @abstractmethod
    def source_key(self, entity: EntityRecord) -> Optional[str]:
        """Input artifact key of an item, used as the job idempotency key."""

    @abstractmethod
    async def execute(
        self, entity: EntityRecord, job: Optional[JobRecord] = None
    ) -> Dict[str, Any]:
        """
        Run the pipeline for a claimed item.

        Returns:
            Result column values to persist together with status=succeeded

        Raises:
            Exception: Any failure; the caller classifies it
        """

    def cleared_results(self) -> Dict[str, Any]:
        return {column: None for column in self.layout.result_columns}

    def success_fields(self, result: Dict[str, Any]) -> Dict[str, Any]:
        """Item update applied on success."""
        fields = self.cleared_results()
        fields.update(
            {k: v for k, v in result.items() if k in self.layout.result_columns}
        )
        fields[self.layout.status_column] = EntityStatus.SUCCEEDED.value
        return fields

    def failure_fields(self, error: ClassifiedError, will_retry: bool) -> Dict[str, Any]:
        """Item update applied when an attempt fails; result columns are cleared."""
        fields = self.cleared_results()
        status = EntityStatus.PENDING if will_retry else EntityStatus.FAILED
        fields[self.layout.status_column] = status.value
        return fields

    def reset_fields(self, will_retry: bool) -> Dict[str, Any]:
        """Item update applied when the stale scan reclaims a job."""
        fields = self.cleared_results()
        status = EntityStatus.PENDING if will_retry else EntityStatus.FAILED
        fields[self.layout.status_column] = status.value
        return fields
