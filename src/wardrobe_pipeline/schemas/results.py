"""
Invocation request and result schemas.

RunResult is what every exposed operation returns; it is always a
successful response, with per-job failures reported inside `results`.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator


class JobResult(BaseModel):
    """Outcome of processing one job or one item.

    Attributes:
        item_id: Wardrobe item processed
        job_id: Job row, when processing came from the queue
        success: Processing succeeded (for stale recovery: job will be retried)
        skipped: Pipeline disabled, item marked skipped
        duration_ms: Wall time of the attempt
        error: Error message if failed (truncated to 500 chars)
        error_code: Normalized error code
        error_category: transient or permanent
    """

    item_id: str
    job_id: Optional[Union[int, str]] = None
    success: bool
    skipped: bool = False
    duration_ms: Optional[int] = Field(default=None, ge=0)
    error: Optional[str] = None
    error_code: Optional[str] = None
    error_category: Optional[str] = None

    @field_validator("error")
    @classmethod
    def truncate_error(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) > 500:
            return v[:500] + "..."
        return v


class RunResult(BaseModel):
    """Aggregate result of one invocation.

    Example:
        >>> RunResult(processed=2, failed=1, results=[...]).to_response()
        {'success': True, 'processed': 2, 'failed': 1, 'results': [...], ...}
    """

    success: bool = True
    processed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    skipped: Optional[int] = Field(default=None, ge=0)
    recovered: Optional[int] = Field(default=None, ge=0)
    results: List[JobResult] = Field(default_factory=list)
    correlation_id: Optional[str] = None

    @classmethod
    def from_results(
        cls, results: List[JobResult], correlation_id: Optional[str] = None
    ) -> "RunResult":
        """Count successes and failures; skipped results count as neither."""
        skipped = sum(1 for r in results if r.skipped)
        return cls(
            processed=sum(1 for r in results if r.success and not r.skipped),
            failed=sum(1 for r in results if not r.success and not r.skipped),
            skipped=skipped or None,
            results=results,
            correlation_id=correlation_id,
        )

    def merge(self, other: "RunResult") -> "RunResult":
        """Combine two results from the same invocation (recovery + queue)."""

        def _add(a: Optional[int], b: Optional[int]) -> Optional[int]:
            if a is None and b is None:
                return None
            return (a or 0) + (b or 0)

        return RunResult(
            success=self.success and other.success,
            processed=self.processed + other.processed,
            failed=self.failed + other.failed,
            skipped=_add(self.skipped, other.skipped),
            recovered=_add(self.recovered, other.recovered),
            results=self.results + other.results,
            correlation_id=self.correlation_id or other.correlation_id,
        )

    def to_response(self) -> Dict[str, Any]:
        """JSON-ready dict, omitting counters that do not apply."""
        return self.model_dump(mode="json", exclude_none=True)


class InvocationRequest(BaseModel):
    """Parameters of one pipeline invocation.

    Attributes:
        item_id: Direct mode, process this item only
        batch_size: Queue mode, max jobs to process (capped by config)
        recover_stale: Run the stale job scan first
    """

    item_id: Optional[str] = None
    batch_size: Optional[int] = Field(default=None, ge=1)
    recover_stale: bool = False

    @field_validator("item_id")
    @classmethod
    def validate_item_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not v.strip():
            raise ValueError("item_id cannot be empty or whitespace")
        return v.strip()
