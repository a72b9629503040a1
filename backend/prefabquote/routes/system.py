# backend/prefabquote/routes/system.py
"""
System health endpoint.

Reports whether the configured record store answers queries.
"""

import time
from flask import Blueprint, current_app

from ..storage import QUOTES, get_store
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_storage_health() -> dict:
    """
    Check record store connectivity with a cheap count.

    Returns dict with status and details.
    """
    start_time = time.time()
    store = get_store()
    try:
        quote_count = store.count(QUOTES)
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "backend": store.backend_name,
            "latency_ms": round(elapsed_ms, 2),
            "details": {"quotes": quote_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Storage health check failed")
        return {
            "status": "unhealthy",
            "backend": store.backend_name,
            "latency_ms": round(elapsed_ms, 2),
            "error": "Storage error",
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: storage healthy
    - 503: storage unhealthy
    """
    storage_health = check_storage_health()
    http_status = 200 if storage_health["status"] == "healthy" else 503

    response = {
        "status": storage_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "storage": storage_health,
        },
    }
    return response, http_status
