from __future__ import annotations

from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_admin
from ..extensions import PROMOTION_SCHEDULER_KEY
from ..services import promotion_service
from ..services.errors import EngineError
from .responses import engine_error_response

promotions_bp = Blueprint("promotions", __name__, url_prefix="/api/promotions")


@promotions_bp.route("/code/<code>", methods=["GET"])
def validate_coupon(code: str):
    subtotal_cents = request.args.get("subtotal_cents", type=int)
    try:
        promo = promotion_service.validate_coupon(code, subtotal_cents=subtotal_cents)
    except EngineError as e:
        return engine_error_response(e)
    return jsonify(promo.to_dict())


@promotions_bp.route("/eligible", methods=["GET"])
def eligible_promotions():
    """Promotions redeemable right now, by time window and usage, not the cached flag."""
    promos = promotion_service.find_eligible_promotions()
    return jsonify({"promotions": [p.to_dict() for p in promos]})


@promotions_bp.route("/scheduler", methods=["GET"])
def scheduler_status():
    scheduler = current_app.extensions.get(PROMOTION_SCHEDULER_KEY)
    return jsonify({
        "running": bool(scheduler and scheduler.is_running()),
        "interval_seconds": scheduler.interval_seconds if scheduler else None,
    })


@promotions_bp.route("/scheduler/tick", methods=["POST"])
@require_admin
def scheduler_tick():
    scheduler = current_app.extensions.get(PROMOTION_SCHEDULER_KEY)
    if scheduler is None:
        return jsonify({"error": "Promotion scheduler not configured"}), 503
    result = scheduler.tick()
    if result is None:
        return jsonify({"error": "Tick skipped or failed, see logs"}), 409
    return jsonify(result.to_dict())
