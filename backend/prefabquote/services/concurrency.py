# Overview: Retry helper for store operations that can lose a concurrency race.

from __future__ import annotations

import logging
import time

from ..errors import AllocationConflict, PersistenceError

logger = logging.getLogger(__name__)


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, PersistenceError):
        return exc.retryable
    return True


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_on: tuple = (AllocationConflict, PersistenceError),
):
    """
    Execute a store operation with retry on concurrency-related failures.

    Retries on AllocationConflict (counter primitive failed) and on
    PersistenceError flagged retryable (locks, deadlocks). Sleeps
    backoff_base * 2**attempt between tries and re-raises the last error.
    """
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            if attempt >= attempts - 1 or not _is_retryable(exc):
                raise
            delay = backoff_base * (2 ** attempt)
            logger.warning("Retrying after %s (attempt %d/%d, sleeping %.2fs)", exc, attempt + 1, attempts, delay)
            time.sleep(delay)
