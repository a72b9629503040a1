# Overview: Service-layer operations for quote numbers; collision-free per-quarter sequence.

"""
Quote Number Allocator

FORMAT: Q<quarter>-<year>-<seq:05d>, e.g. Q4-2025-00042

WHY: The counter lives in the store (one SequenceCounter per quarter) and is
advanced by a single atomic_increment call. The allocator never reads the
counter and writes it back in two steps, so concurrent quote creation can
never be handed the same number.

A failed quote creation after allocation leaves a gap. Gaps are accepted;
duplicates are not.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Optional

from ..errors import AllocationConflict, PersistenceError, QuoteEngineError
from ..storage.base import RecordStore
from ..time_utils import utcnow
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

QUOTE_NUMBER_REGEX = re.compile(r"^Q[1-4]-\d{4}-\d{5}$")
MAX_SEQUENCE = 99999

_PERIOD_REGEX = re.compile(r"^([1-4])-(\d{4})$")


def quarter_of(moment: datetime) -> int:
    return (moment.month - 1) // 3 + 1


def period_key_for(moment: Optional[datetime] = None) -> str:
    """Billing period of a moment: '<quarter>-<year>'."""
    moment = moment or utcnow()
    return f"{quarter_of(moment)}-{moment.year}"


def _split_period(period_key: str) -> tuple[int, int]:
    match = _PERIOD_REGEX.match(period_key or "")
    if not match:
        raise ValueError(f"Invalid period key: {period_key!r}")
    return int(match.group(1)), int(match.group(2))


def counter_key_for(period_key: str) -> str:
    quarter, year = _split_period(period_key)
    return f"quote-{year}-Q{quarter}"


def allocate(store: RecordStore, period_key: str) -> str:
    """Issue the next quote number for a period. One atomic_increment, no read-back."""
    quarter, year = _split_period(period_key)
    counter_key = counter_key_for(period_key)
    try:
        seq = store.atomic_increment(counter_key)
    except PersistenceError as exc:
        raise AllocationConflict(f"Could not advance quote counter {counter_key}") from exc

    if seq > MAX_SEQUENCE:
        raise QuoteEngineError(f"Quote counter {counter_key} exhausted")

    return f"Q{quarter}-{year}-{seq:05d}"


def allocate_quote_number(store: RecordStore, now: Optional[datetime] = None) -> str:
    """Allocate for the period containing `now`, retrying transient conflicts."""
    period_key = period_key_for(now)
    quote_number = run_with_retry(lambda: allocate(store, period_key))
    logger.debug("Allocated quote number %s", quote_number)
    return quote_number
