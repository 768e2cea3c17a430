"""
Job and work item record schemas.

Rows come back from the store as plain dicts (JSON-shaped, timestamps as ISO
strings). These models parse them into typed records used by the job state
machine.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobStatus(str, Enum):
    """Lifecycle of a queued job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class EntityStatus(str, Enum):
    """Per-pipeline processing status stored on the wardrobe item."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


# Entities in these states may be claimed for processing
ELIGIBLE_ENTITY_STATUSES = (EntityStatus.PENDING, EntityStatus.FAILED)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a timestamp the way it is stored (UTC, microsecond precision)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class JobRecord(BaseModel):
    """A row of a pipeline's job table.

    Attributes:
        id: Job identifier
        item_id: Wardrobe item the job processes
        source_key: Input artifact key; (item_id, source_key) is unique
        status: pending, processing, completed or failed
        attempt_count: Attempts claimed so far
        max_attempts: Attempts allowed before the job fails for good
        next_retry_at: Job is not picked up before this time
    """

    model_config = ConfigDict(extra="ignore", use_enum_values=False)

    id: Union[int, str]
    item_id: str = Field(..., min_length=1)
    source_key: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    attempt_count: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    next_retry_at: Optional[datetime] = None
    processing_duration_ms: Optional[int] = None
    last_error: Optional[str] = None
    error_category: Optional[str] = None
    error_code: Optional[str] = None
    error_provider: Optional[str] = None

    @field_validator("item_id", mode="before")
    @classmethod
    def coerce_item_id(cls, v: Any) -> Any:
        return str(v) if v is not None else v

    @field_validator("created_at", "started_at", "completed_at", "next_retry_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @classmethod
    def from_row(cls, row: Dict[str, Any], source_column: str = "source_key") -> "JobRecord":
        """Parse a store row, reading the source key from the pipeline's column."""
        data = dict(row)
        if source_column != "source_key":
            data["source_key"] = row.get(source_column)
        return cls.model_validate(data)

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """Whether a pending job may be picked up at `now`."""
        if self.status != JobStatus.PENDING:
            return False
        if self.next_retry_at is None:
            return True
        return self.next_retry_at <= (now or utc_now())


class EntityRecord(BaseModel):
    """The fields of a wardrobe item the job state machine needs.

    The full row is kept in `row` so pipelines can read their input columns.
    """

    id: str
    status: Optional[EntityStatus] = None
    row: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Dict[str, Any], status_column: str) -> "EntityRecord":
        raw_status = row.get(status_column)
        try:
            status = EntityStatus(raw_status) if raw_status is not None else None
        except ValueError:
            status = None
        return cls(id=str(row["id"]), status=status, row=dict(row))

    @property
    def user_id(self) -> Optional[str]:
        value = self.row.get("user_id")
        return str(value) if value is not None else None

    @property
    def is_eligible(self) -> bool:
        return self.status in ELIGIBLE_ENTITY_STATUSES
