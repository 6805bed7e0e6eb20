# Overview: Cart aggregation (subtotal + high-value discount) and guest cart merge at login.

"""
Cart invariants (authoritative)

- subtotal = sum(unit price x quantity) over lines, recomputed on every read.
- Line quantities are positive integers; anything else fails fast.
- A line's cached resolved_unit_price_cents is never overwritten by a merge.
- Guest carts live on the client. At login they arrive as a GuestCartSnapshot
  and are merged into the customer's active cart in one transaction: either
  every guest line lands or none does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from flask import current_app

from ..extensions import db
from ..models import Cart, CartLine, Customer, Variant
from storefront.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .discount_service import DiscountPolicy, calculate_high_value_discount
from .errors import InvalidPayloadError, InvariantViolationError, NotFoundError
from .pricing_service import is_b2b, quote_line_price

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuestCartLine:
    variant_id: int
    quantity: int
    unit_price_cents: Optional[int] = None

    def to_dict(self) -> dict:
        data = {"variant_id": self.variant_id, "quantity": self.quantity}
        if self.unit_price_cents is not None:
            data["unit_price_cents"] = self.unit_price_cents
        return data


def _positive_int(value, field_name: str, index: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidPayloadError(
            f"items[{index}].{field_name} must be an integer",
            details={"index": index, "field": field_name},
        )
    if value <= 0:
        raise InvariantViolationError(
            f"items[{index}].{field_name} must be positive",
            details={"index": index, "field": field_name, "value": value},
        )
    return value


@dataclass(frozen=True)
class GuestCartSnapshot:
    """
    Client-held guest cart, as sent at login.

    Payload shape: {"items": [{"variant_id": 1, "quantity": 2, "unit_price_cents": 999}]}
    unit_price_cents is optional.
    """
    lines: tuple[GuestCartLine, ...] = ()

    @classmethod
    def from_payload(cls, payload) -> "GuestCartSnapshot":
        if payload is None:
            return cls()
        if not isinstance(payload, dict) or not isinstance(payload.get("items", []), list):
            raise InvalidPayloadError("Guest cart payload must be an object with an 'items' list")

        lines = []
        for index, item in enumerate(payload.get("items", [])):
            if not isinstance(item, dict):
                raise InvalidPayloadError(f"items[{index}] must be an object", details={"index": index})
            variant_id = _positive_int(item.get("variant_id"), "variant_id", index)
            quantity = _positive_int(item.get("quantity"), "quantity", index)
            price = item.get("unit_price_cents")
            if price is not None and (isinstance(price, bool) or not isinstance(price, int) or price < 0):
                raise InvalidPayloadError(
                    f"items[{index}].unit_price_cents must be a non-negative integer",
                    details={"index": index, "field": "unit_price_cents"},
                )
            lines.append(GuestCartLine(variant_id=variant_id, quantity=quantity, unit_price_cents=price))
        return cls(lines=tuple(lines))

    def to_payload(self) -> dict:
        return {"items": [line.to_dict() for line in self.lines]}

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def cleared(self) -> "GuestCartSnapshot":
        return GuestCartSnapshot()

    def combined(self) -> list[GuestCartLine]:
        """One line per variant (first-seen order); repeated variants sum quantities."""
        by_variant: dict[int, GuestCartLine] = {}
        for line in self.lines:
            prev = by_variant.get(line.variant_id)
            if prev is None:
                by_variant[line.variant_id] = line
                continue
            by_variant[line.variant_id] = GuestCartLine(
                variant_id=line.variant_id,
                quantity=prev.quantity + line.quantity,
                unit_price_cents=prev.unit_price_cents if prev.unit_price_cents else line.unit_price_cents,
            )
        return list(by_variant.values())


@dataclass(frozen=True)
class LineItem:
    """A priced-on-read line that is not (or not yet) persisted, e.g. a guest checkout."""
    variant: Variant
    quantity: int
    resolved_unit_price_cents: Optional[int] = None

    @property
    def variant_id(self):
        return self.variant.id


@dataclass(frozen=True)
class LineTotal:
    variant_id: int
    quantity: int
    unit_price_cents: int
    line_total_cents: int
    price_source: str

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "price_source": self.price_source,
        }


@dataclass(frozen=True)
class CartTotals:
    subtotal_cents: int
    discount_amount_cents: int
    discounted_total_cents: int
    lines: tuple[LineTotal, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "discounted_total_cents": self.discounted_total_cents,
            "lines": [line.to_dict() for line in self.lines],
        }


def price_lines(lines: Iterable, customer_tier=None) -> list[LineTotal]:
    priced = []
    for line in lines:
        quote = quote_line_price(
            line.variant,
            line.quantity,
            customer_tier,
            cached_unit_price_cents=getattr(line, "resolved_unit_price_cents", None),
        )
        priced.append(LineTotal(
            variant_id=line.variant_id,
            quantity=line.quantity,
            unit_price_cents=quote.unit_price_cents,
            line_total_cents=quote.unit_price_cents * line.quantity,
            price_source=quote.source,
        ))
    return priced


def compute_cart_totals(cart, customer_tier=None, policy: Optional[DiscountPolicy] = None) -> CartTotals:
    """
    Subtotal, high-value discount and discounted total for a cart.

    cart may be a Cart model or any iterable of lines exposing
    .variant, .variant_id, .quantity and .resolved_unit_price_cents.
    """
    lines = cart.lines if isinstance(cart, Cart) else list(cart)
    priced = price_lines(lines, customer_tier)

    subtotal = sum(line.line_total_cents for line in priced)
    if subtotal < 0:
        raise InvariantViolationError("Cart subtotal is negative", details={"subtotal_cents": subtotal})

    discount = calculate_high_value_discount(subtotal, is_b2b(customer_tier), policy=policy)
    return CartTotals(
        subtotal_cents=subtotal,
        discount_amount_cents=discount.discount_amount_cents,
        discounted_total_cents=discount.discounted_total_cents,
        lines=tuple(priced),
    )


def _get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None or not customer.is_active:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    return customer


def get_active_cart(customer_id: int, *, lock: bool = False) -> Cart | None:
    q = db.session.query(Cart).filter_by(customer_id=customer_id, is_active=True).order_by(Cart.id)
    if lock:
        q = lock_for_update(q)
    return q.first()


def _get_or_create_active_cart(customer_id: int) -> Cart:
    cart = get_active_cart(customer_id, lock=True)
    if cart is None:
        cart = Cart(customer_id=customer_id, is_active=True)
        db.session.add(cart)
        db.session.flush()
    return cart


def _retry_attempts() -> int:
    return int(current_app.config.get("MERGE_RETRY_ATTEMPTS", 2))


def get_cart_totals(customer_id: int, policy: Optional[DiscountPolicy] = None) -> tuple[Cart | None, CartTotals]:
    customer = _get_customer(customer_id)
    cart = get_active_cart(customer_id)
    totals = compute_cart_totals(cart.lines if cart else [], customer.customer_tier, policy=policy)
    return cart, totals


def add_to_cart(customer_id: int, variant_id: int, quantity: int) -> CartLine:
    """
    Add (or top up) a line and cache the price resolved for the line's
    resulting quantity. A top-up re-resolves, so a bulk band it reaches applies.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvariantViolationError("Quantity must be a positive integer", details={"quantity": quantity})

    def _op():
        customer = _get_customer(customer_id)
        variant = db.session.get(Variant, variant_id)
        if variant is None or not variant.is_active:
            raise NotFoundError("Variant not found", details={"variant_id": variant_id})

        cart = _get_or_create_active_cart(customer_id)
        line = next((l for l in cart.lines if l.variant_id == variant_id), None)
        new_quantity = quantity if line is None else line.quantity + quantity
        quote = quote_line_price(variant, new_quantity, customer.customer_tier)
        if line is not None:
            line.quantity = new_quantity
            line.resolved_unit_price_cents = quote.unit_price_cents
        else:
            line = CartLine(
                variant_id=variant.id,
                quantity=quantity,
                resolved_unit_price_cents=quote.unit_price_cents,
            )
            cart.lines.append(line)

        cart.updated_at = utcnow()
        db.session.commit()
        return line

    return run_with_retry(_op, attempts=_retry_attempts(), operation="add_to_cart")


def clear_cart(customer_id: int) -> int:
    """Remove every line from the customer's active cart. Returns lines removed."""
    cart = get_active_cart(customer_id, lock=True)
    if cart is None:
        return 0
    removed = len(cart.lines)
    cart.lines.clear()
    cart.updated_at = utcnow()
    db.session.commit()
    return removed


@dataclass(frozen=True)
class MergeResult:
    cart_id: Optional[int]
    updated_variant_ids: tuple[int, ...] = ()
    inserted_variant_ids: tuple[int, ...] = ()
    skipped_variant_ids: tuple[int, ...] = ()

    def to_dict(self) -> dict:
        return {
            "cart_id": self.cart_id,
            "updated_variant_ids": list(self.updated_variant_ids),
            "inserted_variant_ids": list(self.inserted_variant_ids),
            "skipped_variant_ids": list(self.skipped_variant_ids),
        }


def _merge_locked(cart: Cart, guest_lines: list[GuestCartLine]) -> MergeResult:
    existing = {line.variant_id: line for line in cart.lines}
    variant_ids = [line.variant_id for line in guest_lines]
    variants = {
        v.id: v
        for v in db.session.query(Variant).filter(Variant.id.in_(variant_ids)).all()
    }

    updated, inserted, skipped = [], [], []
    for guest in guest_lines:
        variant = variants.get(guest.variant_id)
        if variant is None or not variant.is_active:
            skipped.append(guest.variant_id)
            continue

        line = existing.get(guest.variant_id)
        if line is not None:
            line.quantity = line.quantity + guest.quantity
            updated.append(guest.variant_id)
            continue

        price = guest.unit_price_cents if guest.unit_price_cents and guest.unit_price_cents > 0 else None
        cart.lines.append(CartLine(
            variant_id=guest.variant_id,
            quantity=guest.quantity,
            resolved_unit_price_cents=price,
        ))
        inserted.append(guest.variant_id)

    if skipped:
        logger.warning("Guest cart merge skipped unknown/inactive variants %s for cart_id=%s", skipped, cart.id)

    # Bumps cart.version_id so a concurrent merge on the same cart conflicts.
    cart.updated_at = utcnow()
    return MergeResult(
        cart_id=cart.id,
        updated_variant_ids=tuple(updated),
        inserted_variant_ids=tuple(inserted),
        skipped_variant_ids=tuple(skipped),
    )


def merge_guest_cart(customer_id: int, snapshot: GuestCartSnapshot) -> MergeResult:
    """
    Merge a guest cart into the customer's active cart.

    Same variant: quantities add, the authenticated line's cached price is
    kept. New variant: inserted with the guest's quantity and price (if any).
    Runs as one transaction, retried once on a concurrency conflict. An empty
    snapshot is a no-op. The caller clears the client copy afterwards
    (snapshot.cleared()).
    """
    if snapshot.is_empty:
        _get_customer(customer_id)
        return MergeResult(cart_id=None)

    guest_lines = snapshot.combined()

    def _op():
        _get_customer(customer_id)
        cart = _get_or_create_active_cart(customer_id)
        result = _merge_locked(cart, guest_lines)
        db.session.commit()
        return result

    result = run_with_retry(_op, attempts=_retry_attempts(), operation="merge_guest_cart")
    logger.info(
        "Merged guest cart into cart_id=%s (updated=%d inserted=%d skipped=%d)",
        result.cart_id,
        len(result.updated_variant_ids),
        len(result.inserted_variant_ids),
        len(result.skipped_variant_ids),
    )
    return result
