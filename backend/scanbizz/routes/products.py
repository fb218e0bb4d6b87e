# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

"""
Catalog routes.

Reads come from the store data cache; writes go through the inventory
service, which answers 202 instead of 200 when the change was queued for
replay. Products are never deleted: DELETE sets the quantity to 0.

SECURITY: All routes require the Authorized session state.
"""
from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_authorized
from ..services import get_services
from ..services.analytics_service import filter_products, low_stock_items
from .errors import error_response, mutation_response

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _truthy(value: str | None) -> bool:
    return (value or "").lower() in {"1", "true", "yes"}


@products_bp.get("")
@require_authorized
def list_products():
    """
    List the catalog, ordered by barcode.

    Query params:
    - search: str (optional) - case-insensitive name match or barcode substring
    - low_stock: 1 (optional) - only products at or below the low stock threshold
    - recent: 1 (optional) - only products updated within the last 24 hours
    """
    services = get_services()
    snapshot = services.cache.snapshot()
    items = filter_products(
        snapshot.catalog,
        search=request.args.get("search", ""),
        low_stock=_truthy(request.args.get("low_stock")),
        recently_updated=_truthy(request.args.get("recent")),
        threshold=services.analytics.low_stock_threshold,
    )
    return jsonify({
        "items": [p.to_dict() for p in items],
        "count": len(items),
        "offline": snapshot.from_offline,
    })


@products_bp.get("/low-stock")
@require_authorized
def list_low_stock():
    services = get_services()
    threshold = services.analytics.low_stock_threshold
    items = low_stock_items(services.cache.snapshot().catalog, threshold)
    return jsonify({
        "items": [p.to_dict() for p in items],
        "count": len(items),
        "threshold": threshold,
    })


@products_bp.get("/<barcode>")
@require_authorized
def get_product(barcode: str):
    product = get_services().cache.snapshot().product(barcode)
    if product is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(product.to_dict())


@products_bp.post("")
@require_authorized
def create_product():
    """
    Add a product, or overwrite the one with the same barcode.

    Request body:
    {
        "barcode": "4006381333931",
        "name": "Pencil",
        "price": "1.50",
        "quantity": 20
    }
    """
    try:
        payload = request.get_json(silent=True)
        result = get_services().inventory.add_product(payload)
        response, status = mutation_response(result, "Product saved")
        return response, (201 if status == 200 else status)
    except Exception as e:
        response = error_response(e)
        if response is None:
            current_app.logger.exception("Failed to add product")
            return jsonify({"error": "Internal server error"}), 500
        return response


@products_bp.put("/<barcode>")
@require_authorized
def update_product(barcode: str):
    """Partial edit of name, price and/or quantity."""
    try:
        payload = request.get_json(silent=True)
        result = get_services().inventory.update_product(barcode, payload)
        return mutation_response(result, "Product updated")
    except Exception as e:
        response = error_response(e)
        if response is None:
            current_app.logger.exception("Failed to update product")
            return jsonify({"error": "Internal server error"}), 500
        return response


@products_bp.post("/<barcode>/restock")
@require_authorized
def restock_product(barcode: str):
    """
    Request body:
    {
        "quantity": 12     // units received, > 0
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        result = get_services().inventory.restock(barcode, data.get("quantity"))
        return mutation_response(result, "Stock updated")
    except Exception as e:
        response = error_response(e)
        if response is None:
            current_app.logger.exception("Failed to restock product")
            return jsonify({"error": "Internal server error"}), 500
        return response


@products_bp.delete("/<barcode>")
@require_authorized
def delete_product(barcode: str):
    try:
        result = get_services().inventory.remove_product(barcode)
        return mutation_response(result, "Product removed from stock")
    except Exception as e:
        response = error_response(e)
        if response is None:
            current_app.logger.exception("Failed to remove product")
            return jsonify({"error": "Internal server error"}), 500
        return response
