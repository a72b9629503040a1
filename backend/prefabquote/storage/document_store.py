# Overview: In-process document RecordStore; dict records guarded by one re-entrant lock.

"""
InMemoryDocumentStore

Used for tests, local demos and single-process deployments.

- Records are deep-copied on the way in and out, so callers never share
  mutable state with the store.
- atomic_increment and every read/write hold the store lock, so counters
  are serialised across threads.
- atomic() holds the same lock for the whole block. It groups writes for
  isolation only: there is no rollback.
"""

from __future__ import annotations

import copy
import operator
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Iterable, Mapping, Optional

from ..errors import PersistenceError
from .base import (
    COLLECTIONS,
    QUOTES,
    Page,
    RecordStore,
    new_id,
    normalize_sort,
    parse_filter_key,
)

# Fields that must stay unique within a collection, mirroring the SQL constraints
UNIQUE_FIELDS = {
    QUOTES: ("quote_number",),
}

_COMPARATORS = {
    "lt": operator.lt,
    "lte": operator.le,
    "gt": operator.gt,
    "gte": operator.ge,
}


def _matches(value: Any, op: str, target: Any) -> bool:
    if op == "eq":
        return value == target
    if op == "ne":
        return value != target
    if op == "in":
        return value in target
    if op == "nin":
        return value not in target
    # Ordering comparisons never match a missing value
    if value is None or target is None:
        return False
    return _COMPARATORS[op](value, target)


class InMemoryDocumentStore(RecordStore):
    backend_name = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._collections: dict[str, dict[str, dict]] = defaultdict(dict)
        self._counters: dict[str, int] = {}

    def _records(self, collection: str) -> dict[str, dict]:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        return self._collections[collection]

    def _select(self, collection: str, filters: Optional[Mapping[str, Any]]) -> list[dict]:
        conditions = [(parse_filter_key(key), value) for key, value in (filters or {}).items()]
        return [
            record
            for record in self._records(collection).values()
            if all(_matches(record.get(field), op, target) for (field, op), target in conditions)
        ]

    def _check_unique(self, collection: str, record: Mapping[str, Any], record_id: str) -> None:
        for field in UNIQUE_FIELDS.get(collection, ()):
            value = record.get(field)
            if value is None:
                continue
            for other_id, other in self._records(collection).items():
                if other_id != record_id and other.get(field) == value:
                    raise PersistenceError(f"duplicate {field} in {collection}: {value}")

    def insert(self, collection: str, record: Mapping[str, Any]) -> str:
        data = copy.deepcopy(dict(record))
        data.setdefault("id", new_id())
        with self._lock:
            records = self._records(collection)
            if data["id"] in records:
                raise PersistenceError(f"duplicate id in {collection}: {data['id']}")
            self._check_unique(collection, data, data["id"])
            records[data["id"]] = data
        return data["id"]

    def update_by_id(self, collection: str, record_id: str, patch: Mapping[str, Any]) -> bool:
        changes = copy.deepcopy(dict(patch))
        changes.pop("id", None)
        with self._lock:
            records = self._records(collection)
            current = records.get(record_id)
            if current is None:
                return False
            merged = {**current, **changes}
            self._check_unique(collection, merged, record_id)
            records[record_id] = merged
        return True

    def find_by_id(self, collection: str, record_id: str, *, for_update: bool = False) -> Optional[dict]:
        # The store lock held by atomic() already serialises the block
        with self._lock:
            record = self._records(collection).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def find(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[Iterable[tuple[str, str]]] = None,
        page: Optional[Page] = None,
    ) -> list[dict]:
        order = normalize_sort(sort)
        with self._lock:
            rows = self._select(collection, filters)
            # Stable sort, least significant key first; None sorts before any value
            for field, direction in reversed(order):
                rows.sort(
                    key=lambda r: (r.get(field) is not None, r.get(field)),
                    reverse=direction == "desc",
                )
            if page is not None:
                rows = rows[page.offset: page.offset + page.size]
            return copy.deepcopy(rows)

    def count(self, collection: str, filters: Optional[Mapping[str, Any]] = None) -> int:
        with self._lock:
            return len(self._select(collection, filters))

    def atomic_increment(self, counter_key: str) -> int:
        with self._lock:
            value = self._counters.get(counter_key, 0) + 1
            self._counters[counter_key] = value
            return value

    @contextmanager
    def atomic(self):
        with self._lock:
            yield self

    def reset(self) -> None:
        """Drop every record and counter."""
        with self._lock:
            self._collections.clear()
            self._counters.clear()
