# Overview: Service-layer operations for maintenance; retention lookups over stored quotes.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..storage.base import QUOTES, RecordStore
from ..time_utils import utcnow
from .payment_service import ACTIVE_PAYMENT_STATUSES


def find_expired_quotes(store: RecordStore, *, now: Optional[datetime] = None) -> list[dict]:
    """
    Quotes past their retention window.

    Quotes that are paid or being paid off in installments are kept regardless
    of expiry. Deletion itself is left to the batch job that calls this.
    """
    return store.find(
        QUOTES,
        {
            "expires_at__lt": now or utcnow(),
            "payment_status__nin": ACTIVE_PAYMENT_STATUSES,
        },
        sort=[("expires_at", "asc")],
    )
