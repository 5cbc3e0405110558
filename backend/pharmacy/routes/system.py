# backend/pharmacy/routes/system.py
"""
System health endpoint.

Checks database connectivity and the local progress cache.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, StockTakeSession
from ..models.stock_takes import SESSION_STATUS_IN_PROGRESS
from pharmacy.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        open_sessions = db.session.query(StockTakeSession).filter_by(
            status=SESSION_STATUS_IN_PROGRESS
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "open_stock_takes": open_sessions,
            }
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_local_cache_health() -> dict:
    """A broken cache degrades resume, it does not stop the system."""
    start_time = time.time()
    try:
        cache = current_app.extensions["local_cache"]
        key_count = len(cache.keys())
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "backend": "file" if current_app.config.get("LOCAL_CACHE_PATH") else "memory",
                "keys": key_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Local cache health check failed")
        return {
            "status": "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "warning": "Local cache unavailable"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    cache_health = check_local_cache_health()

    all_checks = [database_health, cache_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "local_cache": cache_health,
        }
    }

    return response, http_status
