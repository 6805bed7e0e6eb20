# Overview: Shared JSON error responses for engine failures.

from flask import current_app, jsonify

from ..services.errors import (
    ConcurrencyConflictError,
    ConfigurationGapError,
    CouponError,
    EngineError,
    InvalidPayloadError,
    InvariantViolationError,
    NotFoundError,
)

GENERIC_RETRY_MESSAGE = "Unable to calculate price or shipping right now, please retry"


def engine_error_response(e: EngineError):
    """
    Map a typed engine failure to a response.

    Shoppers get a generic message plus a machine code; the detail goes to
    the log only. Input and coupon problems are the shopper's to fix, so
    their message is shown as-is.
    """
    if isinstance(e, InvalidPayloadError):
        return jsonify({"error": str(e), "code": e.code}), 400
    if isinstance(e, NotFoundError):
        return jsonify({"error": str(e), "code": e.code}), 404
    if isinstance(e, CouponError):
        current_app.logger.info("Coupon rejected: %s", e.details)
        return jsonify({"error": str(e), "code": e.code}), 422
    if isinstance(e, ConcurrencyConflictError):
        current_app.logger.warning("Concurrency conflict: %s %s", e, e.details)
        return jsonify({"error": "Your cart changed while we were updating it, please retry", "code": e.code}), 409
    if isinstance(e, (ConfigurationGapError, InvariantViolationError)):
        current_app.logger.error("Checkout engine failure (%s): %s %s", e.code, e, e.details)
        return jsonify({"error": GENERIC_RETRY_MESSAGE, "code": e.code}), 422

    current_app.logger.error("Unhandled engine error (%s): %s %s", e.code, e, e.details)
    return jsonify({"error": GENERIC_RETRY_MESSAGE, "code": e.code}), 422
