# Overview: Engine error taxonomy shared by pricing, storage, services and routes.

"""
Error taxonomy

- ValidationError: input violates a range/shape rule. Carries every violation.
- AllocationConflict: the store's atomic counter primitive failed. Retryable.
- PersistenceError: a store call failed. The driver error is chained as __cause__.
- NotFoundError: a lookup by id found nothing ("doesn't exist" vs. "couldn't check").
"""

from __future__ import annotations

from dataclasses import dataclass


class QuoteEngineError(Exception):
    """Base class for all engine errors."""


@dataclass(frozen=True)
class FieldError:
    """One violated rule, addressed by a dotted field path and a stable code."""
    field: str
    code: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "code": self.code, "message": self.message}


class ValidationError(QuoteEngineError, ValueError):
    """400-level input problem."""

    def __init__(self, message: str, errors: list[FieldError] | None = None):
        super().__init__(message)
        self.errors = list(errors or [])

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "errors": [e.to_dict() for e in self.errors],
        }


class AllocationConflict(QuoteEngineError):
    """Raised when the sequence counter could not be incremented."""


class PersistenceError(QuoteEngineError):
    """Raised when a store insert/update/lookup fails."""

    def __init__(self, message: str, *, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class NotFoundError(QuoteEngineError):
    """Raised when a record does not exist."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection} record {record_id} not found")
        self.collection = collection
        self.record_id = record_id
