# Overview: Health endpoint for the device database and the remote store.

"""
System health endpoint.

Reports on the two storage dependencies separately: the device database
(accounts and local storage) and the remote keyed store. A remote store that
is only offline is "degraded", since mutations are still queued locally.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Account, LocalStorageEntry
from ..services import get_services
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        account_count = db.session.query(Account).count()
        entry_count = db.session.query(LocalStorageEntry).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "accounts": account_count,
                "local_storage_entries": entry_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_remote_store_health() -> dict:
    services = get_services()
    if not services.connectivity.is_online():
        return {"status": "degraded", "warning": "Device is offline"}

    start_time = time.time()
    try:
        # Any two-segment path is addressable; absence reads as None
        services.remote.get("health/probe")
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"subscriptions": services.remote.subscription_count()},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Remote store health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Remote store error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: a dependency is unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    remote_health = check_remote_store_health()

    all_checks = [database_health, remote_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "remote_store": remote_health,
        }
    }
    return response, http_status
