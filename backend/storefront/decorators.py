# Overview: Request decorators for storefront API routes.

import hmac
from functools import wraps
from flask import request, jsonify, g, current_app

from .extensions import db
from .models import Customer

CUSTOMER_HEADER = "X-Customer-Id"
ADMIN_HEADER = "X-Admin-Token"


def _load_customer():
    """
    Resolve the shopper from the header set by the upstream auth layer.

    Returns (customer, error_response). No header means guest.
    """
    raw = request.headers.get(CUSTOMER_HEADER)
    if raw is None or raw.strip() == "":
        return None, None
    try:
        customer_id = int(raw)
    except ValueError:
        return None, (jsonify({"error": f"Invalid {CUSTOMER_HEADER} header"}), 400)

    customer = db.session.get(Customer, customer_id)
    if customer is None or not customer.is_active:
        return None, (jsonify({"error": "Authentication required"}), 401)
    return customer, None


def with_shopper(f):
    """
    Establish shopper context. Guests are allowed.

    Sets:
    - g.customer: Customer or None (guest)
    - g.customer_tier: raw tier string or None (guest)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        customer, error = _load_customer()
        if error:
            return error
        g.customer = customer
        g.customer_tier = customer.customer_tier if customer else None
        return f(*args, **kwargs)

    return decorated_function


def require_customer(f):
    """Like with_shopper, but guests get 401."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        customer, error = _load_customer()
        if error:
            return error
        if customer is None:
            return jsonify({"error": "Authentication required"}), 401
        g.customer = customer
        g.customer_tier = customer.customer_tier
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Operator-only endpoints. Requires X-Admin-Token to match ADMIN_API_TOKEN."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("ADMIN_API_TOKEN")
        provided = request.headers.get(ADMIN_HEADER)
        if not provided:
            return jsonify({"error": "Authentication required"}), 401
        if not expected or not hmac.compare_digest(provided, expected):
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated_function
