"""
Checkout quote: the full pricing & fulfillment pass for one cart.

Order of evaluation:
1. line prices and subtotal (cart_service)
2. high-value discount on the subtotal
3. shipping tier on the discounted total
4. optional coupon, validated against the subtotal
5. dispatch warehouse for the cart's variant quantities

Any step may raise an EngineError; nothing is defaulted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from .cart_service import CartTotals, compute_cart_totals
from .discount_service import DiscountPolicy
from .promotion_service import calculate_coupon_discount, validate_coupon
from .shipping_service import ShippingSelection, select_shipping_tier
from .warehouse_service import Coordinates, DispatchPlan, select_warehouse


@dataclass(frozen=True)
class CouponApplication:
    code: str
    promo_type: str
    discount_cents: int

    def to_dict(self) -> dict:
        return {"code": self.code, "promo_type": self.promo_type, "discount_cents": self.discount_cents}


@dataclass(frozen=True)
class CheckoutQuote:
    totals: CartTotals
    shipping: ShippingSelection
    dispatch: DispatchPlan
    coupon: Optional[CouponApplication]
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "totals": self.totals.to_dict(),
            "shipping": self.shipping.to_dict(),
            "dispatch": self.dispatch.to_dict(),
            "coupon": self.coupon.to_dict() if self.coupon else None,
            "total_cents": self.total_cents,
        }


def required_quantities(lines: Iterable) -> dict[int, int]:
    required: dict[int, int] = {}
    for line in lines:
        required[line.variant_id] = required.get(line.variant_id, 0) + line.quantity
    return required


def build_checkout_quote(
    lines,
    customer_tier,
    destination: Coordinates,
    coupon_code: Optional[str] = None,
    now: Optional[datetime] = None,
    policy: Optional[DiscountPolicy] = None,
) -> CheckoutQuote:
    lines = list(lines)
    totals = compute_cart_totals(lines, customer_tier, policy=policy)
    shipping = select_shipping_tier(totals.discounted_total_cents)

    coupon = None
    coupon_discount = 0
    if coupon_code:
        promo = validate_coupon(coupon_code, subtotal_cents=totals.subtotal_cents, now=now)
        coupon_discount = calculate_coupon_discount(
            promo,
            subtotal_cents=totals.discounted_total_cents,
            shipping_cents=shipping.rate_cents,
        )
        coupon = CouponApplication(code=promo.code, promo_type=promo.promo_type, discount_cents=coupon_discount)

    dispatch = select_warehouse(destination, required_quantities(lines))

    total = totals.discounted_total_cents + shipping.rate_cents - coupon_discount
    return CheckoutQuote(
        totals=totals,
        shipping=shipping,
        dispatch=dispatch,
        coupon=coupon,
        total_cents=total,
    )
