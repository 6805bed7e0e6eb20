# Overview: Flask API routes for the authenticated cart and guest cart merge.

# backend/storefront/routes/cart.py
"""Cart API routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_customer
from ..services import cart_service
from ..services.cart_service import GuestCartSnapshot
from ..services.errors import EngineError
from .responses import engine_error_response


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_customer
def get_cart_route():
    """Active cart with freshly computed totals."""
    try:
        cart, totals = cart_service.get_cart_totals(g.customer.id)
        return jsonify({
            "cart": cart.to_dict() if cart else None,
            "totals": totals.to_dict(),
        }), 200

    except EngineError as e:
        return engine_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/items")
@require_customer
def add_item_route():
    try:
        data = request.get_json() or {}
        variant_id = data.get("variant_id")
        quantity = data.get("quantity")

        if variant_id is None or quantity is None:
            return jsonify({"error": "variant_id and quantity required"}), 400

        line = cart_service.add_to_cart(g.customer.id, variant_id, quantity)
        return jsonify({"line": line.to_dict()}), 201

    except EngineError as e:
        return engine_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("")
@require_customer
def clear_cart_route():
    try:
        removed = cart_service.clear_cart(g.customer.id)
        return jsonify({"removed": removed}), 200

    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/merge")
@require_customer
def merge_guest_cart_route():
    """
    Merge the client-held guest cart at login.

    Body: {"items": [{"variant_id": 1, "quantity": 2, "unit_price_cents": 999}]}
    The response carries the cleared guest cart the client should store.
    """
    try:
        snapshot = GuestCartSnapshot.from_payload(request.get_json(silent=True) or {})
        result = cart_service.merge_guest_cart(g.customer.id, snapshot)
        _, totals = cart_service.get_cart_totals(g.customer.id)
        return jsonify({
            "merge": result.to_dict(),
            "totals": totals.to_dict(),
            "guest_cart": snapshot.cleared().to_payload(),
        }), 200

    except EngineError as e:
        return engine_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to merge guest cart")
        return jsonify({"error": "Internal server error"}), 500
