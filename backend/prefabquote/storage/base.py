# Overview: Narrow record-store interface the engine talks to; backends implement it.

"""
RecordStore

WHY: Pricing, numbering and the ledger must not care whether records live in
a relational database or a document store. Services receive a RecordStore and
use only the operations below.

RECORDS:
- Plain dicts keyed by snake_case field names.
- Money fields are Decimal, timestamps are UTC-naive datetimes.
- A record's "id" is assigned by the store on insert unless provided.

FILTERS:
- {"field": value} or {"field__op": value}
- ops: eq, ne, lt, lte, gt, gte, in, nin
- All conditions are ANDed.

SORT: [("field", "asc" | "desc"), ...]
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Iterable, Mapping, NamedTuple, Optional

# Collection names
CONFIGURATIONS = "configurations"
QUOTES = "quotes"
PAYMENTS = "payment_history"

COLLECTIONS = (CONFIGURATIONS, QUOTES, PAYMENTS)

OPERATORS = ("eq", "ne", "lt", "lte", "gt", "gte", "in", "nin")
SORT_DIRECTIONS = ("asc", "desc")


class Page(NamedTuple):
    """1-based page of `size` records."""
    number: int = 1
    size: int = 20

    @property
    def offset(self) -> int:
        return (self.number - 1) * self.size


def new_id() -> str:
    return str(uuid.uuid4())


def parse_filter_key(key: str) -> tuple[str, str]:
    """'total_paid__gte' -> ('total_paid', 'gte'); bare field means eq."""
    field, sep, op = key.rpartition("__")
    if not sep:
        return key, "eq"
    if op not in OPERATORS:
        raise ValueError(f"Unknown filter operator: {op}")
    return field, op


def normalize_sort(sort: Optional[Iterable[tuple[str, str]]]) -> list[tuple[str, str]]:
    result = []
    for field, direction in sort or ():
        direction = (direction or "asc").lower()
        if direction not in SORT_DIRECTIONS:
            raise ValueError(f"Unknown sort direction: {direction}")
        result.append((field, direction))
    return result


class RecordStore(ABC):
    """Storage primitives used by the quote engine."""

    backend_name = "abstract"

    @abstractmethod
    def insert(self, collection: str, record: Mapping[str, Any]) -> str:
        """Insert a record; returns its id."""

    @abstractmethod
    def update_by_id(self, collection: str, record_id: str, patch: Mapping[str, Any]) -> bool:
        """Apply a partial update; False when no such record exists."""

    @abstractmethod
    def find_by_id(self, collection: str, record_id: str, *, for_update: bool = False) -> Optional[dict]:
        """
        Fetch one record.

        for_update=True locks the record until the enclosing atomic() block
        ends, so concurrent read-modify-write cycles on it serialise.
        """

    @abstractmethod
    def find(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[Iterable[tuple[str, str]]] = None,
        page: Optional[Page] = None,
    ) -> list[dict]:
        ...

    @abstractmethod
    def count(self, collection: str, filters: Optional[Mapping[str, Any]] = None) -> int:
        ...

    @abstractmethod
    def atomic_increment(self, counter_key: str) -> int:
        """
        Create-or-increment the named counter in one indivisible step.

        Returns the post-increment value (1 for a new counter). Two concurrent
        callers never receive the same value.
        """

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """
        Group several writes. Nested blocks join the outermost one.
        """

    def find_one(self, collection: str, filters: Mapping[str, Any]) -> Optional[dict]:
        rows = self.find(collection, filters, page=Page(1, 1))
        return rows[0] if rows else None
