# Overview: Shipping rate selection from configured subtotal bands.

"""
Shipping tier selection (authoritative)

- Only active tiers are considered.
- A tier matches when min_subtotal <= subtotal and (max_subtotal is NULL or
  subtotal <= max_subtotal). Bounds are inclusive, in cents.
- Several matches (overlapping configuration): the highest min_subtotal wins,
  then sort_order, then id. The overlap is logged.
- No match (gap in configuration): ConfigurationGapError. Never a free or
  zero-cost default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ..extensions import db
from ..models import ShippingTier
from .errors import ConfigurationGapError, InvariantViolationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShippingSelection:
    tier_id: Optional[int]
    rate_cents: int
    service_name: Optional[str]
    min_subtotal_cents: int
    max_subtotal_cents: Optional[int]

    def to_dict(self) -> dict:
        return {
            "tier_id": self.tier_id,
            "rate_cents": self.rate_cents,
            "service_name": self.service_name,
            "min_subtotal_cents": self.min_subtotal_cents,
            "max_subtotal_cents": self.max_subtotal_cents,
        }


def list_active_tiers() -> list[ShippingTier]:
    return (
        db.session.query(ShippingTier)
        .filter_by(is_active=True)
        .order_by(ShippingTier.min_subtotal_cents, ShippingTier.sort_order, ShippingTier.id)
        .all()
    )


def tier_matches(tier, subtotal_cents: int) -> bool:
    return tier.min_subtotal_cents <= subtotal_cents and (
        tier.max_subtotal_cents is None or subtotal_cents <= tier.max_subtotal_cents
    )


def _specificity_key(tier):
    # Highest min first; then configuration order.
    return (-tier.min_subtotal_cents, tier.sort_order or 0, tier.id or 0)


def select_shipping_tier(subtotal_cents: int, tiers: Optional[Iterable] = None) -> ShippingSelection:
    """
    Pick the shipping tier for a (discounted) subtotal.

    tiers defaults to the active rows in the shipping_tiers table; inactive
    tiers passed in explicitly are ignored as well.
    """
    if subtotal_cents < 0:
        raise InvariantViolationError("Subtotal cannot be negative", details={"subtotal_cents": subtotal_cents})

    candidates = list_active_tiers() if tiers is None else [t for t in tiers if t.is_active]
    matches = sorted((t for t in candidates if tier_matches(t, subtotal_cents)), key=_specificity_key)

    if not matches:
        logger.error("No shipping tier configured for subtotal_cents=%s", subtotal_cents)
        raise ConfigurationGapError(
            "No shipping tier configured for this order amount",
            details={"subtotal_cents": subtotal_cents, "active_tiers": len(candidates)},
        )

    if len(matches) > 1:
        logger.warning(
            "Overlapping shipping tiers for subtotal_cents=%s (tier ids=%s); using id=%s",
            subtotal_cents,
            [t.id for t in matches],
            matches[0].id,
        )

    tier = matches[0]
    return ShippingSelection(
        tier_id=tier.id,
        rate_cents=tier.rate_cents,
        service_name=tier.service_name,
        min_subtotal_cents=tier.min_subtotal_cents,
        max_subtotal_cents=tier.max_subtotal_cents,
    )


def audit_tiers(tiers: Optional[Iterable] = None) -> dict:
    """
    Report gaps and overlaps in the active tiers over [0, inf), in cents.

    Used by `flask shipping check`; selection itself never depends on it.
    """
    active = sorted(
        (t for t in (list_active_tiers() if tiers is None else tiers) if t.is_active),
        key=lambda t: (t.min_subtotal_cents, t.sort_order or 0, t.id or 0),
    )
    gaps: list[dict] = []
    overlaps: list[dict] = []

    covered_to = -1  # highest subtotal covered so far; None = unbounded
    prev = None
    for tier in active:
        if covered_to is not None and tier.min_subtotal_cents > covered_to + 1:
            gaps.append({"from_cents": covered_to + 1, "to_cents": tier.min_subtotal_cents - 1})
        if prev is not None and (covered_to is None or tier.min_subtotal_cents <= covered_to):
            overlaps.append({"tier_ids": [prev.id, tier.id], "from_cents": tier.min_subtotal_cents})

        if covered_to is not None:
            covered_to = None if tier.max_subtotal_cents is None else max(covered_to, tier.max_subtotal_cents)
        prev = tier

    if covered_to is not None:
        gaps.append({"from_cents": covered_to + 1, "to_cents": None})

    return {"tiers": len(active), "gaps": gaps, "overlaps": overlaps}
