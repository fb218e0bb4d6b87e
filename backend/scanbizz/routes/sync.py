# Overview: Flask API routes for connectivity and offline queue replay; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_authorized
from ..services import get_services
from ..services.local_storage import StorageError
from ..services.sync_service import ReplayInProgressError

sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.get("/status")
@require_authorized
def status():
    """Connectivity, pending actions and the outcome of the last replay."""
    services = get_services()
    try:
        body = services.reconciler.status()
    except StorageError as e:
        return jsonify({"error": str(e)}), 500
    body["online"] = services.connectivity.is_online()
    return jsonify(body)


@sync_bp.post("/connectivity")
@require_authorized
def set_connectivity():
    """
    Report a connectivity change from the device.

    Request body:
    {
        "online": true
    }

    Going online refreshes the cache subscriptions and replays the queue.
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("online"), bool):
        return jsonify({"error": "online must be true or false"}), 400

    services = get_services()
    try:
        changed = services.connectivity.set_online(data["online"])
        body = services.reconciler.status()
    except StorageError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to apply connectivity change")
        return jsonify({"error": "Internal server error"}), 500

    body["online"] = services.connectivity.is_online()
    body["changed"] = changed
    return jsonify(body)


@sync_bp.post("/retry")
@require_authorized
def retry():
    """Replay the queue now. 409 while another replay is running."""
    services = get_services()
    if not services.connectivity.is_online():
        return jsonify({"error": "Cannot sync while offline"}), 409
    try:
        result = services.reconciler.replay()
    except ReplayInProgressError as e:
        return jsonify({"error": str(e)}), 409
    except StorageError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to replay offline queue")
        return jsonify({"error": "Internal server error"}), 500

    services.cache.refresh()
    return jsonify(result.to_dict()), (200 if result.ok else 502)
