# Overview: Record store selection and lookup for the running app.

from flask import current_app

from ..extensions import db
from .base import CONFIGURATIONS, PAYMENTS, QUOTES, Page, RecordStore
from .document_store import InMemoryDocumentStore
from .sql_store import SqlRecordStore

EXTENSION_KEY = "record_store"

BACKENDS = ("sql", "memory")


def build_store(backend: str) -> RecordStore:
    if backend == "sql":
        return SqlRecordStore(db)
    if backend == "memory":
        return InMemoryDocumentStore()
    raise ValueError(f"Unknown STORAGE_BACKEND: {backend!r}. Must be one of {list(BACKENDS)}")


def init_store(app) -> RecordStore:
    store = build_store(app.config["STORAGE_BACKEND"])
    app.extensions[EXTENSION_KEY] = store
    return store


def get_store() -> RecordStore:
    """The RecordStore bound to the current app."""
    return current_app.extensions[EXTENSION_KEY]


__all__ = [
    "CONFIGURATIONS", "PAYMENTS", "QUOTES", "Page", "RecordStore",
    "InMemoryDocumentStore", "SqlRecordStore",
    "build_store", "init_store", "get_store",
]
