"""Work item store: contract, in-memory and Supabase implementations."""

from wardrobe_pipeline.store.base import (
    AnyOf,
    Filter,
    Predicate,
    Row,
    WorkItemStore,
    any_of,
    eq,
    in_,
    is_null,
    lt,
    lte,
)
from wardrobe_pipeline.store.memory import InMemoryWorkItemStore

__all__ = [
    "AnyOf",
    "Filter",
    "InMemoryWorkItemStore",
    "Predicate",
    "Row",
    "WorkItemStore",
    "any_of",
    "eq",
    "in_",
    "is_null",
    "lt",
    "lte",
]
