# Overview: Flask API routes for sales analytics; parses input and returns JSON responses.

"""
Analytics routes.

All figures are computed on request from the cached snapshot; nothing is
stored. The daily series reads earlier day buckets from the remote store and
reports history_complete=false when it could not.
"""
from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_authorized
from ..services import get_services
from ..services.analytics_service import ReportError
from ..services.remote_store import RemoteStoreError

analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


@analytics_bp.get("/summary")
@require_authorized
def summary():
    """Today's revenue, items sold, low stock items and top products."""
    return jsonify(get_services().analytics.summary())


@analytics_bp.get("/daily")
@require_authorized
def daily():
    """
    Revenue per day, oldest first, ending today.

    Query params:
    - days: int (optional, default 7, 1..90)
    """
    days = request.args.get("days", default=7, type=int)
    try:
        return jsonify(get_services().analytics.daily_series(days))
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    except RemoteStoreError as e:
        return jsonify({"error": str(e)}), 502
    except Exception:
        current_app.logger.exception("Failed to build daily series")
        return jsonify({"error": "Internal server error"}), 500
