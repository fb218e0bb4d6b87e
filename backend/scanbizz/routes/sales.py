# Overview: Flask API routes for today's sales and the open receipt; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_authorized
from ..services import get_services
from ..services.analytics_service import items_sold_today, today_revenue
from ..services.receipt_service import EmptyReceiptError, build_receipt
from ..schemas import price_to_remote
from ..time_utils import utcnow
from .errors import error_response, mutation_response

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("/today")
@require_authorized
def list_today():
    snapshot = get_services().cache.snapshot()
    return jsonify({
        "day": snapshot.day,
        "items": [s.to_dict() for s in snapshot.today_sales],
        "count": len(snapshot.today_sales),
        "total": price_to_remote(today_revenue(snapshot.today_sales)),
        "items_sold": items_sold_today(snapshot.today_sales),
        "pending_actions": snapshot.pending,
        "offline": snapshot.from_offline,
    })


@sales_bp.post("")
@require_authorized
def sell():
    """
    Sell a scanned product.

    Request body:
    {
        "barcode": "4006381333931",
        "quantity": 1          // optional, default 1
    }

    Returns 409 when the product does not have enough stock; nothing is
    written or queued in that case.
    """
    try:
        data = request.get_json(silent=True) or {}
        barcode = data.get("barcode")
        if not barcode:
            return jsonify({"error": "barcode required"}), 400

        result = get_services().inventory.sell(str(barcode), data.get("quantity", 1))
        response, status = mutation_response(result, "Sale recorded")
        return response, (201 if status == 200 else status)
    except Exception as e:
        response = error_response(e)
        if response is None:
            current_app.logger.exception("Failed to record sale")
            return jsonify({"error": "Internal server error"}), 500
        return response


@sales_bp.delete("/<sale_id>")
@require_authorized
def remove_sale(sale_id: str):
    """Take a line off the receipt and return its quantity to stock."""
    try:
        result = get_services().inventory.remove_sale(sale_id)
        return mutation_response(result, "Item removed from receipt")
    except Exception as e:
        response = error_response(e)
        if response is None:
            current_app.logger.exception("Failed to remove sale")
            return jsonify({"error": "Internal server error"}), 500
        return response


@sales_bp.post("/reset")
@require_authorized
def reset_sales():
    """
    Clear today's sales bucket.

    Request body:
    {
        "restore_stock": true    // optional, put sold quantities back in stock
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        restore_stock = bool(data.get("restore_stock", False))
        result = get_services().inventory.reset_day_sales(restore_stock)
        message = "Sales reset and stock restored" if restore_stock else "Sales reset"
        return mutation_response(result, message)
    except Exception as e:
        response = error_response(e)
        if response is None:
            current_app.logger.exception("Failed to reset sales")
            return jsonify({"error": "Internal server error"}), 500
        return response


@sales_bp.get("/receipt")
@require_authorized
def receipt():
    """Receipt text for today's open sales plus a WhatsApp share link."""
    try:
        snapshot = get_services().cache.snapshot()
        return jsonify(build_receipt(snapshot.today_sales, utcnow()))
    except EmptyReceiptError as e:
        return jsonify({"error": str(e)}), 400
