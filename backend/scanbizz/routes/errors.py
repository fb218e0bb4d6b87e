# Overview: Shared translation of service errors and mutation results into JSON responses.

from flask import jsonify

from ..services.inventory_service import MutationResult
from ..services.local_storage import StorageError
from ..services.remote_mutations import NotEnoughStockError, ProductNotFoundError, SaleNotFoundError
from ..services.remote_store import RemoteStoreError, RemoteUnavailableError
from ..services.session_service import NotAuthenticatedError
from ..validation import ConflictError, ValidationError

# Checked in order; subclasses before their bases
ERROR_STATUS = (
    (ValidationError, 400),
    (NotAuthenticatedError, 401),
    (ProductNotFoundError, 404),
    (SaleNotFoundError, 404),
    (NotEnoughStockError, 409),
    (ConflictError, 409),
    (RemoteUnavailableError, 503),
    (RemoteStoreError, 502),
    (StorageError, 500),
)


def error_response(exc: Exception):
    """(response, status) for a known service error, None for anything else."""
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return jsonify({"error": str(exc)}), status
    return None


def mutation_response(result: MutationResult, message: str):
    """
    200 when the remote store took the write, 202 when it was queued for
    replay (the cached view shows it straight away, flagged as pending).
    """
    body = result.to_dict()
    if result.queued:
        body["message"] = f"{message} (saved offline, will sync when back online)"
        return jsonify(body), 202
    body["message"] = message
    return jsonify(body), 200
