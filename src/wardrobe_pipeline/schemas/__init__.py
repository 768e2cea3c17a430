"""Record and result schemas for the wardrobe job pipeline."""

from wardrobe_pipeline.schemas.jobs import (
    ELIGIBLE_ENTITY_STATUSES,
    EntityRecord,
    EntityStatus,
    JobRecord,
    JobStatus,
    to_iso,
    utc_now,
)
from wardrobe_pipeline.schemas.results import InvocationRequest, JobResult, RunResult

__all__ = [
    "ELIGIBLE_ENTITY_STATUSES",
    "EntityRecord",
    "EntityStatus",
    "InvocationRequest",
    "JobRecord",
    "JobResult",
    "JobStatus",
    "RunResult",
    "to_iso",
    "utc_now",
]
