"""In-memory work item store.

Rows are kept as JSON-shaped dicts. A single lock serialises each row
operation so conditional updates behave like row-level atomic writes; it is
never held across awaits of other components.
"""

import asyncio
import copy
import itertools
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from wardrobe_pipeline.store.base import (
    AnyOf,
    Predicate,
    Row,
    WorkItemStore,
    serialize_fields,
    serialize_value,
)


def _matches(row: Row, predicate: Predicate) -> bool:
    if isinstance(predicate, AnyOf):
        return any(_matches(row, f) for f in predicate.filters)

    actual = row.get(predicate.column)
    expected = serialize_value(predicate.value)
    op = predicate.op

    if op == "is_null":
        return actual is None
    if op == "eq":
        return actual == expected
    if op == "neq":
        return actual != expected
    if op == "in":
        return actual in tuple(serialize_value(v) for v in predicate.value)

    # Ordering comparisons never match NULL, as in SQL
    if actual is None or expected is None:
        return False
    if op == "lt":
        return actual < expected
    if op == "lte":
        return actual <= expected
    if op == "gt":
        return actual > expected
    if op == "gte":
        return actual >= expected
    return False


class InMemoryWorkItemStore(WorkItemStore):
    """
    Dict-backed store for tests and local runs.

    Args:
        tables: Optional initial rows per table
    """

    def __init__(self, tables: Optional[Dict[str, Iterable[Mapping[str, Any]]]] = None):
        self._tables: Dict[str, Dict[str, Row]] = {}
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)
        for table, rows in (tables or {}).items():
            for row in rows:
                self.seed(table, row)

    def seed(self, table: str, row: Mapping[str, Any]) -> Row:
        """Insert a row synchronously (test setup). Assigns an id if missing."""
        data = serialize_fields(row)
        if data.get("id") is None:
            data["id"] = next(self._ids)
        self._tables.setdefault(table, {})[str(data["id"])] = data
        return copy.deepcopy(data)

    def rows(self, table: str) -> List[Row]:
        """Snapshot of all rows of a table (test inspection)."""
        return [copy.deepcopy(r) for r in self._tables.get(table, {}).values()]

    def peek(self, table: str, row_id: Any) -> Optional[Row]:
        """Synchronous get for test assertions."""
        row = self._tables.get(table, {}).get(str(row_id))
        return copy.deepcopy(row) if row is not None else None

    async def get(self, table: str, row_id: Any) -> Optional[Row]:
        async with self._lock:
            return self.peek(table, row_id)

    async def conditional_update(
        self,
        table: str,
        row_id: Any,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> int:
        async with self._lock:
            row = self._tables.get(table, {}).get(str(row_id))
            if row is None:
                return 0
            for column, value in (expected or {}).items():
                if row.get(column) != serialize_value(value):
                    return 0
            row.update(serialize_fields(fields))
            return 1

    async def query(
        self,
        table: str,
        filters: Sequence[Predicate] = (),
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Row]:
        async with self._lock:
            matched = [
                row
                for row in self._tables.get(table, {}).values()
                if all(_matches(row, f) for f in filters)
            ]
            if order_by:
                # NULLs sort last in either direction
                present = [r for r in matched if r.get(order_by) is not None]
                missing = [r for r in matched if r.get(order_by) is None]
                present.sort(key=lambda r: r[order_by], reverse=not ascending)
                matched = present + missing
            if limit is not None:
                matched = matched[:limit]
            return [copy.deepcopy(r) for r in matched]

    async def insert_if_absent(
        self, table: str, row: Mapping[str, Any], unique_on: Sequence[str]
    ) -> Optional[Row]:
        data = serialize_fields(row)
        async with self._lock:
            for existing in self._tables.get(table, {}).values():
                if all(existing.get(c) == data.get(c) for c in unique_on):
                    return None
            return self.seed(table, data)
