# Overview: Relational RecordStore backed by the Flask-SQLAlchemy models.

"""
SqlRecordStore

TRANSACTIONS:
- Outside store.atomic(), every write commits immediately.
- Inside store.atomic(), writes only flush; the block commits once on exit
  or rolls back on any exception. The flag lives in session.info, so it is
  scoped to the current (thread-local) session.
- find_by_id(..., for_update=True) is SELECT ... FOR UPDATE; the row stays
  locked until the enclosing atomic() block ends.

COUNTERS:
- SQLite / PostgreSQL: single INSERT ... ON CONFLICT DO UPDATE ... RETURNING.
- Other dialects: row-locking UPDATE first, INSERT on miss, and a retry of
  the UPDATE if a concurrent INSERT won the unique constraint.
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from ..errors import PersistenceError
from ..models import PaymentHistoryEntry, ProductConfiguration, QuoteRequest, SequenceCounter
from ..time_utils import utcnow
from .base import (
    CONFIGURATIONS,
    PAYMENTS,
    QUOTES,
    Page,
    RecordStore,
    new_id,
    normalize_sort,
    parse_filter_key,
)

logger = logging.getLogger(__name__)

MODELS = {
    CONFIGURATIONS: ProductConfiguration,
    QUOTES: QuoteRequest,
    PAYMENTS: PaymentHistoryEntry,
}

_ATOMIC_FLAG = "prefabquote.atomic"

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def _apply_op(column, op: str, value: Any):
    if op == "eq":
        return column == value
    if op == "ne":
        return column != value
    if op == "lt":
        return column < value
    if op == "lte":
        return column <= value
    if op == "gt":
        return column > value
    if op == "gte":
        return column >= value
    if op == "in":
        return column.in_(list(value))
    return ~column.in_(list(value))


class SqlRecordStore(RecordStore):
    backend_name = "sql"

    def __init__(self, db):
        self.db = db

    # =========================================================================
    # Helpers
    # =========================================================================

    @property
    def session(self):
        return self.db.session

    def _in_atomic(self) -> bool:
        return bool(self.session.info.get(_ATOMIC_FLAG))

    def _model(self, collection: str):
        try:
            return MODELS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}") from None

    def _column(self, model, field: str):
        if field not in model.__table__.columns:
            raise ValueError(f"Unknown field for {model.__tablename__}: {field}")
        return getattr(model, field)

    def _row_to_dict(self, row) -> dict:
        # Copies, so callers can never mutate identity-mapped state (JSON columns)
        return {c.key: copy.deepcopy(getattr(row, c.key)) for c in row.__table__.columns}

    def _finish_write(self) -> None:
        if self._in_atomic():
            self.session.flush()
        else:
            self.session.commit()

    def _fail(self, action: str, exc: SQLAlchemyError) -> PersistenceError:
        if not self._in_atomic():
            self.session.rollback()
        logger.warning("Record store %s failed: %s", action, exc)
        return PersistenceError(f"{action} failed", retryable=isinstance(exc, OperationalError))

    def _query(self, model, filters: Optional[Mapping[str, Any]]):
        query = self.session.query(model)
        for key, value in (filters or {}).items():
            field, op = parse_filter_key(key)
            query = query.filter(_apply_op(self._column(model, field), op, value))
        return query

    # =========================================================================
    # RecordStore
    # =========================================================================

    def insert(self, collection: str, record: Mapping[str, Any]) -> str:
        model = self._model(collection)
        data = dict(record)
        data.setdefault("id", new_id())
        for field in data:
            self._column(model, field)
        try:
            self.session.add(model(**data))
            self._finish_write()
        except SQLAlchemyError as exc:
            raise self._fail(f"insert into {collection}", exc) from exc
        return data["id"]

    def update_by_id(self, collection: str, record_id: str, patch: Mapping[str, Any]) -> bool:
        model = self._model(collection)
        values = {self._column(model, field).key: value for field, value in patch.items()}
        values.pop("id", None)
        if not values:
            return self.find_by_id(collection, record_id) is not None
        stmt = update(model).where(model.id == record_id).values(**values)
        try:
            result = self.session.execute(stmt)
            self._finish_write()
        except SQLAlchemyError as exc:
            raise self._fail(f"update of {collection}/{record_id}", exc) from exc
        return bool(result.rowcount)

    def find_by_id(self, collection: str, record_id: str, *, for_update: bool = False) -> Optional[dict]:
        model = self._model(collection)
        query = self.session.query(model).filter(model.id == record_id)
        if for_update:
            # Row lock held until the atomic() block commits; SQLite ignores it
            # and serialises writers on its database lock instead.
            query = query.with_for_update().populate_existing()
        try:
            row = query.first()
        except SQLAlchemyError as exc:
            raise self._fail(f"lookup of {collection}/{record_id}", exc) from exc
        return self._row_to_dict(row) if row is not None else None

    def find(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[Iterable[tuple[str, str]]] = None,
        page: Optional[Page] = None,
    ) -> list[dict]:
        model = self._model(collection)
        query = self._query(model, filters)
        for field, direction in normalize_sort(sort):
            column = self._column(model, field)
            query = query.order_by(column.desc() if direction == "desc" else column.asc())
        if page is not None:
            query = query.offset(page.offset).limit(page.size)
        try:
            rows = query.all()
        except SQLAlchemyError as exc:
            raise self._fail(f"query of {collection}", exc) from exc
        return [self._row_to_dict(row) for row in rows]

    def count(self, collection: str, filters: Optional[Mapping[str, Any]] = None) -> int:
        model = self._model(collection)
        try:
            return self._query(model, filters).count()
        except SQLAlchemyError as exc:
            raise self._fail(f"count of {collection}", exc) from exc

    def atomic_increment(self, counter_key: str) -> int:
        try:
            dialect = self.session.get_bind().dialect.name
            if dialect in _UPSERT_DIALECTS:
                value = self._upsert_increment(counter_key, _UPSERT_DIALECTS[dialect])
            else:
                value = self._update_then_insert(counter_key)
            self._finish_write()
        except SQLAlchemyError as exc:
            raise self._fail(f"increment of counter {counter_key}", exc) from exc
        return value

    def _upsert_increment(self, counter_key: str, insert) -> int:
        now = utcnow()
        stmt = insert(SequenceCounter).values(counter_key=counter_key, seq=1, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[SequenceCounter.counter_key],
            set_={"seq": SequenceCounter.seq + 1, "updated_at": now},
        ).returning(SequenceCounter.seq)
        return self.session.execute(stmt).scalar_one()

    def _update_then_insert(self, counter_key: str) -> int:
        now = utcnow()
        stmt = (
            update(SequenceCounter)
            .where(SequenceCounter.counter_key == counter_key)
            .values(seq=SequenceCounter.seq + 1, updated_at=now)
        )

        def _read() -> int:
            return (
                self.session.query(SequenceCounter.seq)
                .filter_by(counter_key=counter_key)
                .with_for_update()
                .scalar()
            )

        if self.session.execute(stmt).rowcount:
            return _read()
        try:
            with self.session.begin_nested():
                self.session.add(SequenceCounter(counter_key=counter_key, seq=1, updated_at=now))
            return 1
        except IntegrityError:
            # Lost the race to create the row; it exists now
            if not self.session.execute(stmt).rowcount:
                raise
            return _read()

    @contextmanager
    def atomic(self):
        if self._in_atomic():
            yield self
            return
        self.session.info[_ATOMIC_FLAG] = True
        try:
            yield self
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError("transaction failed", retryable=isinstance(exc, OperationalError)) from exc
        except Exception:
            self.session.rollback()
            raise
        finally:
            self.session.info.pop(_ATOMIC_FLAG, None)
