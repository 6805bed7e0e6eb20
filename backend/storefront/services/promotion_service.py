"""
Promotion lifecycle and coupon eligibility.

is_active on a promotion is a cache. run_promotion_scheduler_tick() keeps it
in line with the starts_at / expires_at window using two set-based UPDATEs;
validate_coupon() never trusts the flag and re-checks the window itself, so
redemption is correct between ticks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import or_

from ..extensions import db
from ..models import Promotion
from storefront.time_utils import to_utc_naive, to_utc_z, utcnow, within_window
from .discount_service import percent_of
from .errors import CouponError, InvariantViolationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TickResult:
    activated: int
    deactivated: int
    ran_at: datetime

    @property
    def changed(self) -> bool:
        return bool(self.activated or self.deactivated)

    def to_dict(self) -> dict:
        return {
            "activated": self.activated,
            "deactivated": self.deactivated,
            "ran_at": to_utc_z(self.ran_at),
        }


def run_promotion_scheduler_tick(now: Optional[datetime] = None) -> TickResult:
    """
    Flip is_active to match each promotion's time window. Idempotent.

    Activate:   inactive, starts_at <= now, expires_at NULL or > now
    Deactivate: active, expires_at <= now

    A promotion expiring exactly at `now` satisfies the inclusive window
    and the deactivation rule at once; deactivation wins so that a second
    tick at the same instant changes nothing.

    Both UPDATEs commit together; on failure the session is rolled back and
    the error propagates (the next tick recomputes from timestamps).
    """
    now = to_utc_naive(now) if now is not None else utcnow()

    try:
        activated = (
            db.session.query(Promotion)
            .filter(
                Promotion.is_active.is_(False),
                Promotion.starts_at <= now,
                or_(Promotion.expires_at.is_(None), Promotion.expires_at > now),
            )
            .update({Promotion.is_active: True}, synchronize_session=False)
        )
        deactivated = (
            db.session.query(Promotion)
            .filter(
                Promotion.is_active.is_(True),
                Promotion.expires_at.isnot(None),
                Promotion.expires_at <= now,
            )
            .update({Promotion.is_active: False}, synchronize_session=False)
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    result = TickResult(activated=activated, deactivated=deactivated, ran_at=now)
    if result.changed:
        logger.info("Promotion tick at %s: activated=%d deactivated=%d", to_utc_z(now), activated, deactivated)
    else:
        logger.debug("Promotion tick at %s: no status changes needed", to_utc_z(now))
    return result


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def find_eligible_promotions(now: Optional[datetime] = None) -> list[Promotion]:
    """Promotions whose window covers `now`, regardless of the cached flag."""
    now = to_utc_naive(now) if now is not None else utcnow()
    return (
        db.session.query(Promotion)
        .filter(
            Promotion.starts_at <= now,
            or_(Promotion.expires_at.is_(None), Promotion.expires_at >= now),
            or_(Promotion.usage_limit.is_(None), Promotion.usage_count < Promotion.usage_limit),
        )
        .order_by(Promotion.starts_at, Promotion.id)
        .all()
    )


def validate_coupon(code: str, subtotal_cents: Optional[int] = None, now: Optional[datetime] = None) -> Promotion:
    """
    Return the promotion for `code` if it can be redeemed right now.

    Shoppers only ever see the generic message; the reason is in details.
    """
    now = to_utc_naive(now) if now is not None else utcnow()
    normalized = normalize_code(code)
    promo = db.session.query(Promotion).filter_by(code=normalized).first() if normalized else None

    if promo is None:
        raise CouponError("Invalid or expired coupon code", details={"reason": "unknown_code"})

    if not within_window(promo.starts_at, promo.expires_at, now):
        raise CouponError(
            "Invalid or expired coupon code",
            details={"reason": "outside_window", "code": promo.code},
        )

    if promo.usage_limit is not None and promo.usage_count >= promo.usage_limit:
        raise CouponError(
            "Coupon usage limit exceeded",
            details={"reason": "usage_limit", "code": promo.code},
        )

    if (
        subtotal_cents is not None
        and promo.min_order_amount_cents is not None
        and subtotal_cents < promo.min_order_amount_cents
    ):
        raise CouponError(
            "Order does not meet the coupon minimum",
            details={
                "reason": "min_order_amount",
                "code": promo.code,
                "min_order_amount_cents": promo.min_order_amount_cents,
            },
        )

    if not promo.is_active:
        # Window says yes but the scheduler has not caught up yet.
        logger.debug("Coupon %s redeemable ahead of scheduler activation", promo.code)

    return promo


def calculate_coupon_discount(promo: Promotion, subtotal_cents: int, shipping_cents: int = 0) -> int:
    """Discount in cents, capped by max_discount_cents and never above what it applies to."""
    if subtotal_cents < 0 or shipping_cents < 0:
        raise InvariantViolationError(
            "Coupon base amounts cannot be negative",
            details={"subtotal_cents": subtotal_cents, "shipping_cents": shipping_cents},
        )

    if promo.promo_type == "PERCENTAGE":
        discount = percent_of(subtotal_cents, promo.discount_value)
        ceiling = subtotal_cents
    elif promo.promo_type == "FIXED_AMOUNT":
        discount = promo.discount_value
        ceiling = subtotal_cents
    elif promo.promo_type == "FREE_SHIPPING":
        discount = shipping_cents
        ceiling = shipping_cents
    else:
        raise CouponError("Unsupported coupon", details={"reason": "unknown_type", "promo_type": promo.promo_type})

    if promo.max_discount_cents is not None:
        discount = min(discount, promo.max_discount_cents)
    return max(0, min(discount, ceiling))
