# Overview: Flask API routes for the store profile and account activity; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_authorized
from ..services import get_services
from ..services.remote_store import RemoteStoreError, RemoteUnavailableError
from .errors import error_response, mutation_response

store_bp = Blueprint("store", __name__, url_prefix="/api/store")


@store_bp.get("")
@require_authorized
def get_store():
    snapshot = get_services().cache.snapshot()
    return jsonify(snapshot.store_profile.to_dict())


@store_bp.put("")
@require_authorized
def update_store():
    """
    Replace the store profile.

    Request body:
    {
        "name": "Corner Shop",     // required
        "address": "1 Main St",
        "phone": "555-0100"
    }
    """
    try:
        payload = request.get_json(silent=True)
        result = get_services().inventory.update_store(payload)
        return mutation_response(result, "Store information updated")
    except Exception as e:
        response = error_response(e)
        if response is None:
            current_app.logger.exception("Failed to update store information")
            return jsonify({"error": "Internal server error"}), 500
        return response


@store_bp.get("/activity")
@require_authorized
def list_activity():
    """
    Recent account activity, newest first.

    Query params:
    - limit: int (optional, default 50, max 200)
    """
    limit = request.args.get("limit", default=50, type=int)
    if limit < 1 or limit > 200:
        return jsonify({"error": "limit must be between 1 and 200"}), 400

    services = get_services()
    try:
        entries = services.activity.recent(services.session.require_identity().uid, limit=limit)
    except RemoteUnavailableError:
        return jsonify({"error": "Activity log is not available offline"}), 503
    except RemoteStoreError as e:
        return jsonify({"error": str(e)}), 502
    return jsonify({"items": entries, "count": len(entries)})
