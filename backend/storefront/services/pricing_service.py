# Overview: Line-item unit price resolution (segment, bulk, base) for carts and checkout.

"""
Pricing precedence (authoritative)

A cart line's unit price is the first match of, in order:
1. cached   - resolved_unit_price_cents already stored on the line (> 0)
2. bulk     - the variant's quantity band covering the line quantity
3. segment  - the variant's price for the canonical pricing tier
4. base     - variant sale price if > 0, else regular price

Bulk always beats segment. Guests have no pricing tier, so they never reach a
segment price.

Raw customer tiers collapse to canonical pricing tiers through
canonical_pricing_tier() only. That mapping is for pricing; it says nothing
about what an account is allowed to do.

All amounts are integer cents.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .errors import InvariantViolationError

logger = logging.getLogger(__name__)


class CustomerTier(str, Enum):
    B2C = "B2C"
    B2B = "B2B"
    ENTERPRISE_1 = "ENTERPRISE_1"
    ENTERPRISE_2 = "ENTERPRISE_2"


class PricingTier(str, Enum):
    B2C = "B2C"
    ENTERPRISE_1 = "ENTERPRISE_1"


# B2B and ENTERPRISE_2 are billed at the published price of the tier below.
PRICING_TIER_BY_CUSTOMER_TIER: dict[CustomerTier, PricingTier] = {
    CustomerTier.B2C: PricingTier.B2C,
    CustomerTier.B2B: PricingTier.B2C,
    CustomerTier.ENTERPRISE_1: PricingTier.ENTERPRISE_1,
    CustomerTier.ENTERPRISE_2: PricingTier.ENTERPRISE_1,
}

_unmapped = set(CustomerTier) - set(PRICING_TIER_BY_CUSTOMER_TIER)
if _unmapped:
    raise RuntimeError(f"Customer tiers without a pricing decision: {sorted(t.value for t in _unmapped)}")

GUEST_TIER_VALUES = (None, "", "none", "NONE")


def parse_customer_tier(raw) -> Optional[CustomerTier]:
    """
    Normalize a raw tier value. None / "" / "none" -> None (guest).

    Unknown values raise rather than silently pricing at some default tier.
    """
    if isinstance(raw, CustomerTier):
        return raw
    if raw in GUEST_TIER_VALUES:
        return None
    try:
        return CustomerTier(str(raw).strip().upper())
    except ValueError:
        raise InvariantViolationError(
            f"Unknown customer tier: {raw!r}",
            details={"customer_tier": raw},
        )


def canonical_pricing_tier(raw) -> Optional[PricingTier]:
    tier = parse_customer_tier(raw)
    if tier is None:
        return None
    return PRICING_TIER_BY_CUSTOMER_TIER[tier]


def is_b2b(raw) -> bool:
    """High-value discount eligibility flag: raw tier B2B only."""
    return parse_customer_tier(raw) is CustomerTier.B2B


def _effective_price(regular_price_cents: int, sale_price_cents: Optional[int]) -> int:
    if sale_price_cents is not None and sale_price_cents > 0:
        return sale_price_cents
    return regular_price_cents


def resolve_segment_price(variant, customer_tier) -> Optional[int]:
    """
    Segment price for the customer's canonical tier, or None ("no entry").

    Duplicate rows for one tier are a data anomaly: the lowest id wins.
    """
    pricing_tier = canonical_pricing_tier(customer_tier)
    if pricing_tier is None:
        return None

    matches = [
        sp for sp in (variant.segment_prices or [])
        if sp.customer_tier == pricing_tier.value
    ]
    if not matches:
        return None

    matches.sort(key=lambda sp: (sp.id is None, sp.id or 0))
    if len(matches) > 1:
        logger.warning(
            "Duplicate segment prices for variant_id=%s tier=%s (ids=%s); using id=%s",
            getattr(variant, "id", None),
            pricing_tier.value,
            [sp.id for sp in matches],
            matches[0].id,
        )
    chosen = matches[0]
    return _effective_price(chosen.regular_price_cents, chosen.sale_price_cents)


def band_matches(band, quantity: int) -> bool:
    return quantity >= band.min_qty and (band.max_qty is None or quantity <= band.max_qty)


def resolve_bulk_price(bulk_prices, quantity: int, variant_id=None) -> Optional[int]:
    """
    Price of the band covering quantity, or None ("no match").

    Overlapping bands should not exist; when they do the band with the
    smallest min_qty wins and the anomaly is logged.
    """
    matches = [band for band in (bulk_prices or []) if band_matches(band, quantity)]
    if not matches:
        return None

    matches.sort(key=lambda band: (band.min_qty, band.id is None, band.id or 0))
    if len(matches) > 1:
        logger.warning(
            "Overlapping bulk price bands for variant_id=%s quantity=%s (band ids=%s); using min_qty=%s",
            variant_id,
            quantity,
            [band.id for band in matches],
            matches[0].min_qty,
        )
    return matches[0].price_cents


def resolve_base_price(variant) -> int:
    return _effective_price(variant.regular_price_cents, variant.sale_price_cents)


@dataclass(frozen=True)
class LinePricingContext:
    variant: object
    quantity: int
    customer_tier: Optional[str]
    cached_unit_price_cents: Optional[int] = None


@dataclass(frozen=True)
class PriceQuote:
    unit_price_cents: int
    source: str

    def to_dict(self) -> dict:
        return {"unit_price_cents": self.unit_price_cents, "source": self.source}


def _cached(ctx: LinePricingContext) -> Optional[int]:
    cached = ctx.cached_unit_price_cents
    if cached is not None and cached > 0:
        return cached
    return None


def _bulk(ctx: LinePricingContext) -> Optional[int]:
    return resolve_bulk_price(ctx.variant.bulk_prices, ctx.quantity, variant_id=getattr(ctx.variant, "id", None))


def _segment(ctx: LinePricingContext) -> Optional[int]:
    return resolve_segment_price(ctx.variant, ctx.customer_tier)


def _base(ctx: LinePricingContext) -> Optional[int]:
    return resolve_base_price(ctx.variant)


# Ordered strategies; first non-None wins. _base always answers.
PRICE_RESOLUTION_ORDER: tuple[tuple[str, Callable[[LinePricingContext], Optional[int]]], ...] = (
    ("cached", _cached),
    ("bulk", _bulk),
    ("segment", _segment),
    ("base", _base),
)


def quote_line_price(
    variant,
    quantity: int,
    customer_tier=None,
    cached_unit_price_cents: Optional[int] = None,
) -> PriceQuote:
    """Resolve one unit price and report which strategy produced it."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvariantViolationError(
            "Cart line quantity must be a positive integer",
            details={"variant_id": getattr(variant, "id", None), "quantity": quantity},
        )
    if variant is None:
        raise InvariantViolationError("Cart line has no variant")

    ctx = LinePricingContext(
        variant=variant,
        quantity=quantity,
        customer_tier=customer_tier,
        cached_unit_price_cents=cached_unit_price_cents,
    )
    for source, strategy in PRICE_RESOLUTION_ORDER:
        price = strategy(ctx)
        if price is None:
            continue
        if price < 0:
            raise InvariantViolationError(
                "Resolved unit price is negative",
                details={"variant_id": getattr(variant, "id", None), "source": source, "price_cents": price},
            )
        return PriceQuote(unit_price_cents=price, source=source)

    # Unreachable while _base is last in the chain.
    raise InvariantViolationError("No price strategy produced a price")


def resolve_line_price(cart_line, customer_tier=None) -> int:
    """
    Authoritative unit price (cents) for a cart line.

    cart_line needs .variant, .quantity and .resolved_unit_price_cents.
    """
    return quote_line_price(
        cart_line.variant,
        cart_line.quantity,
        customer_tier,
        cached_unit_price_cents=getattr(cart_line, "resolved_unit_price_cents", None),
    ).unit_price_cents
