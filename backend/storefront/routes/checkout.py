# Overview: Flask API routes for checkout quotes, shipping tiers and dispatch selection.

# backend/storefront/routes/checkout.py
"""Checkout API routes (guests allowed)"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import with_shopper
from ..extensions import db
from ..models import Variant
from ..money import to_cents
from ..services import cart_service, checkout_service, shipping_service, warehouse_service
from ..services.cart_service import GuestCartSnapshot, LineItem
from ..services.errors import EngineError, NotFoundError
from ..services.warehouse_service import Coordinates
from .responses import engine_error_response


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


def _line_items_from_payload(data: dict) -> list[LineItem]:
    """Quote lines are priced on the server; any client unit_price_cents is ignored."""
    snapshot = GuestCartSnapshot.from_payload({"items": data.get("items", [])})
    lines = snapshot.combined()
    variants = {
        v.id: v
        for v in db.session.query(Variant).filter(Variant.id.in_([l.variant_id for l in lines])).all()
    }
    items = []
    for line in lines:
        variant = variants.get(line.variant_id)
        if variant is None or not variant.is_active:
            raise NotFoundError("Variant not found", details={"variant_id": line.variant_id})
        items.append(LineItem(
            variant=variant,
            quantity=line.quantity,
        ))
    return items


def _quote_lines(data: dict):
    """Explicit items win; otherwise a signed-in shopper's active cart is used."""
    if "items" in data or g.customer is None:
        return _line_items_from_payload(data)
    cart = cart_service.get_active_cart(g.customer.id)
    return list(cart.lines) if cart else []


@checkout_bp.post("/checkout/quote")
@with_shopper
def checkout_quote_route():
    """
    Full pricing & fulfillment quote.

    Body: {"items"?: [...], "destination": {"latitude", "longitude"}, "coupon_code"?: "SAVE10"}
    """
    try:
        data = request.get_json(silent=True) or {}
        if "destination" not in data:
            return jsonify({"error": "destination required"}), 400

        destination = Coordinates.from_payload(data["destination"])
        lines = _quote_lines(data)
        if not lines:
            return jsonify({"error": "Cart is empty"}), 400

        quote = checkout_service.build_checkout_quote(
            lines,
            g.customer_tier,
            destination,
            coupon_code=data.get("coupon_code"),
        )
        return jsonify({"quote": quote.to_dict()}), 200

    except EngineError as e:
        return engine_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build checkout quote")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.get("/shipping/tier")
def shipping_tier_route():
    """?subtotal=49.99 (dollars) or ?subtotal_cents=4999"""
    try:
        if request.args.get("subtotal_cents") is not None:
            subtotal_cents = request.args.get("subtotal_cents", type=int)
            if subtotal_cents is None:
                return jsonify({"error": "subtotal_cents must be an integer"}), 400
        elif request.args.get("subtotal") is not None:
            subtotal_cents = to_cents(request.args["subtotal"])
        else:
            return jsonify({"error": "subtotal or subtotal_cents required"}), 400

        selection = shipping_service.select_shipping_tier(subtotal_cents)
        return jsonify({"shipping": selection.to_dict()}), 200

    except EngineError as e:
        return engine_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to select shipping tier")
        return jsonify({"error": "Internal server error"}), 500


@checkout_bp.post("/checkout/dispatch")
def dispatch_route():
    """Body: {"destination": {...}, "items": [{"variant_id", "quantity"}], "subtotal_cents"?: int}"""
    try:
        data = request.get_json(silent=True) or {}
        if "destination" not in data:
            return jsonify({"error": "destination required"}), 400

        destination = Coordinates.from_payload(data["destination"])
        snapshot = GuestCartSnapshot.from_payload({"items": data.get("items", [])})
        required = {line.variant_id: line.quantity for line in snapshot.combined()}
        if not required:
            return jsonify({"error": "items required"}), 400

        subtotal_cents = data.get("subtotal_cents")
        if subtotal_cents is not None and (isinstance(subtotal_cents, bool) or not isinstance(subtotal_cents, int)):
            return jsonify({"error": "subtotal_cents must be an integer"}), 400

        plan = warehouse_service.select_warehouse(destination, required, subtotal_cents=subtotal_cents)
        return jsonify({"dispatch": plan.to_dict()}), 200

    except EngineError as e:
        return engine_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to select dispatch warehouse")
        return jsonify({"error": "Internal server error"}), 500
