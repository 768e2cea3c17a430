"""
Work item store contract.

The job state machine depends only on these four operations. Exclusion
between workers comes entirely from conditional_update: a write applies only
when every expected column still holds the value the caller observed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from wardrobe_pipeline.schemas.jobs import to_iso

Row = Dict[str, Any]

FILTER_OPS = ("eq", "neq", "lt", "lte", "gt", "gte", "in", "is_null")


@dataclass(frozen=True)
class Filter:
    """Single column predicate."""

    column: str
    op: str
    value: Any = None

    def __post_init__(self):
        if self.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op '{self.op}', expected one of {FILTER_OPS}")


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of predicates, e.g. next_retry_at IS NULL OR next_retry_at <= now."""

    filters: Tuple[Filter, ...]


Predicate = Union[Filter, AnyOf]


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def lt(column: str, value: Any) -> Filter:
    return Filter(column, "lt", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


def in_(column: str, values: Sequence[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


def is_null(column: str) -> Filter:
    return Filter(column, "is_null")


def any_of(*filters: Filter) -> AnyOf:
    return AnyOf(tuple(filters))


def serialize_value(value: Any) -> Any:
    """Convert a value to the JSON shape the backing store persists."""
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, Enum):
        return value.value
    return value


def serialize_fields(fields: Mapping[str, Any]) -> Row:
    return {k: serialize_value(v) for k, v in fields.items()}


class WorkItemStore(ABC):
    """
    Row store holding wardrobe items and job rows.

    All operations are async; implementations backed by blocking clients run
    them off the event loop. Failures raise ClassifiedError subclasses.
    """

    @abstractmethod
    async def get(self, table: str, row_id: Any) -> Optional[Row]:
        """Fetch one row by id, or None if it does not exist."""

    @abstractmethod
    async def conditional_update(
        self,
        table: str,
        row_id: Any,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """
        Update a row only if every expected column matches.

        Args:
            table: Table name
            row_id: Row id
            fields: Columns to write
            expected: Column values that must still hold (None means IS NULL)

        Returns:
            Number of rows affected (0 or 1)
        """

    @abstractmethod
    async def query(
        self,
        table: str,
        filters: Sequence[Predicate] = (),
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Select rows matching all predicates."""

    @abstractmethod
    async def insert_if_absent(
        self, table: str, row: Mapping[str, Any], unique_on: Sequence[str]
    ) -> Optional[Row]:
        """
        Insert a row unless one with the same unique_on values exists.

        Returns:
            The inserted row, or None if a matching row already existed
        """
