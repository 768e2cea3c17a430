"""Supabase (PostgREST) backed work item store."""

import asyncio
import logging
from typing import Any, Callable, List, Mapping, Optional, Sequence, TypeVar

from supabase import Client

from core.errors import (
    ClassifiedError,
    ErrorCode,
    Provider,
    ServerError,
    classify_exception,
)
from core.logging import LoggedClass
from wardrobe_pipeline.store.base import (
    AnyOf,
    Predicate,
    Row,
    WorkItemStore,
    serialize_fields,
    serialize_value,
)

T = TypeVar("T")

# PostgREST method per filter op
_POSTGREST_OPS = {
    "eq": "eq",
    "neq": "neq",
    "lt": "lt",
    "lte": "lte",
    "gt": "gt",
    "gte": "gte",
}


def _or_clause(group: AnyOf) -> str:
    """Render an OR group in PostgREST syntax: col.op.value,col.is.null"""
    parts = []
    for f in group.filters:
        if f.op == "is_null":
            parts.append(f"{f.column}.is.null")
        elif f.op == "in":
            values = ",".join(str(serialize_value(v)) for v in f.value)
            parts.append(f"{f.column}.in.({values})")
        else:
            parts.append(f"{f.column}.{_POSTGREST_OPS[f.op]}.{serialize_value(f.value)}")
    return ",".join(parts)


def _apply_filter(builder: Any, predicate: Predicate) -> Any:
    if isinstance(predicate, AnyOf):
        return builder.or_(_or_clause(predicate))
    if predicate.op == "is_null":
        return builder.is_(predicate.column, "null")
    if predicate.op == "in":
        return builder.in_(predicate.column, [serialize_value(v) for v in predicate.value])
    method = getattr(builder, _POSTGREST_OPS[predicate.op])
    return method(predicate.column, serialize_value(predicate.value))


class SupabaseWorkItemStore(LoggedClass, WorkItemStore):
    """
    Work item store over the Supabase Python client.

    The client is synchronous, so every call runs in a worker thread via
    asyncio.to_thread. Any client error is raised as a ClassifiedError with
    provider=internal; unrecognised errors become transient server errors.

    Args:
        client: Supabase client (service role)
    """

    def __init__(self, client: Client):
        self.client = client
        super().__init__()

    async def _run(self, operation: str, table: str, call: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(call)
        except ClassifiedError:
            raise
        except Exception as e:
            classified = classify_exception(e, provider=Provider.INTERNAL)
            self._log_exception(
                classified,
                f"Store {operation} failed",
                level=logging.WARNING,
                table=table,
                operation=operation,
            )
            if classified.code == ErrorCode.UNKNOWN:
                raise ServerError(
                    f"Store {operation} on {table} failed: {e}",
                    provider=Provider.INTERNAL,
                    cause=e,
                ) from e
            raise classified from e

    async def get(self, table: str, row_id: Any) -> Optional[Row]:
        def call() -> Optional[Row]:
            response = (
                self.client.table(table).select("*").eq("id", row_id).limit(1).execute()
            )
            return response.data[0] if response.data else None

        return await self._run("get", table, call)

    async def conditional_update(
        self,
        table: str,
        row_id: Any,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> int:
        payload = serialize_fields(fields)

        def call() -> int:
            builder = self.client.table(table).update(payload).eq("id", row_id)
            for column, value in (expected or {}).items():
                if value is None:
                    builder = builder.is_(column, "null")
                else:
                    builder = builder.eq(column, serialize_value(value))
            response = builder.execute()
            return len(response.data or [])

        return await self._run("conditional_update", table, call)

    async def query(
        self,
        table: str,
        filters: Sequence[Predicate] = (),
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Row]:
        def call() -> List[Row]:
            builder = self.client.table(table).select("*")
            for predicate in filters:
                builder = _apply_filter(builder, predicate)
            if order_by:
                builder = builder.order(order_by, desc=not ascending)
            if limit is not None:
                builder = builder.limit(limit)
            return list(builder.execute().data or [])

        return await self._run("query", table, call)

    async def insert_if_absent(
        self, table: str, row: Mapping[str, Any], unique_on: Sequence[str]
    ) -> Optional[Row]:
        payload = serialize_fields(row)

        def call() -> Optional[Row]:
            response = (
                self.client.table(table)
                .upsert(payload, on_conflict=",".join(unique_on), ignore_duplicates=True)
                .execute()
            )
            return response.data[0] if response.data else None

        return await self._run("insert_if_absent", table, call)
