"""
Typed failures raised by the pricing & fulfillment engine.

Checkout handlers catch EngineError subclasses and show the shopper a generic
"please retry" message; the code/details are for logs and callers, never
for display. A silent fallback price is never substituted for one of these.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base for all engine failures."""

    code = "engine_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "error": str(self), "details": self.details}


class ConfigurationGapError(EngineError):
    """Administrative data cannot answer the question (no shipping band, no warehouse)."""

    code = "configuration_gap"


class InvariantViolationError(EngineError, ValueError):
    """Negative/zero quantity, negative price or subtotal. Fail fast."""

    code = "invariant_violation"


class ConcurrencyConflictError(EngineError):
    """Guest cart merge still conflicted after its single retry."""

    code = "concurrency_conflict"


class CouponError(EngineError):
    """Coupon code is unknown, outside its window, exhausted, or below its minimum."""

    code = "coupon_invalid"


class NotFoundError(EngineError):
    code = "not_found"


class InvalidPayloadError(EngineError, ValueError):
    """Malformed input at the engine boundary (e.g. a guest cart snapshot)."""

    code = "invalid_payload"
