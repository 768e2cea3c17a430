"""Job state machine: queue access, claim-execute unit, recovery, batching."""

from wardrobe_pipeline.jobs.batch import BatchRunner
from wardrobe_pipeline.jobs.executor import JobExecutor
from wardrobe_pipeline.jobs.queue import JobQueue
from wardrobe_pipeline.jobs.recovery import StaleJobRecovery
from wardrobe_pipeline.jobs.service import PipelineService

__all__ = [
    "BatchRunner",
    "JobExecutor",
    "JobQueue",
    "PipelineService",
    "StaleJobRecovery",
]
