"""
High-value discount: an order-level discount stepped on the subtotal.

Two independently configured schedules (retail and B2B) are loaded from
config HIGH_VALUE_DISCOUNT_TIERS / HIGH_VALUE_DISCOUNT_TIERS_B2B. Each is an
ordered list of {"min_subtotal_cents", "percent_bps"} or
{"min_subtotal_cents", "flat_cents"} rows.

Schedules are validated on load so that the discount can only grow with the
subtotal: thresholds strictly increase, a schedule uses one kind of step, and
step values never decrease. The discount is clamped to the subtotal.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from flask import current_app

from .errors import InvariantViolationError

BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class DiscountStep:
    min_subtotal_cents: int
    percent_bps: Optional[int] = None
    flat_cents: Optional[int] = None

    @property
    def kind(self) -> str:
        return "percent" if self.percent_bps is not None else "flat"

    def amount_for(self, subtotal_cents: int) -> int:
        if self.percent_bps is not None:
            return percent_of(subtotal_cents, self.percent_bps)
        return self.flat_cents or 0

    def to_dict(self) -> dict:
        return {
            "min_subtotal_cents": self.min_subtotal_cents,
            "percent_bps": self.percent_bps,
            "flat_cents": self.flat_cents,
        }


def percent_of(amount_cents: int, bps: int) -> int:
    """bps/10000 of amount, rounded half-up to the cent."""
    value = (Decimal(amount_cents) * Decimal(bps) / Decimal(BPS_DENOMINATOR)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(value)


def _parse_step(row: dict) -> DiscountStep:
    if "min_subtotal_cents" not in row:
        raise ValueError(f"Discount step missing min_subtotal_cents: {row!r}")
    has_percent = row.get("percent_bps") is not None
    has_flat = row.get("flat_cents") is not None
    if has_percent == has_flat:
        raise ValueError(f"Discount step needs exactly one of percent_bps / flat_cents: {row!r}")

    step = DiscountStep(
        min_subtotal_cents=int(row["min_subtotal_cents"]),
        percent_bps=int(row["percent_bps"]) if has_percent else None,
        flat_cents=int(row["flat_cents"]) if has_flat else None,
    )
    if step.min_subtotal_cents < 0:
        raise ValueError(f"Discount threshold must be >= 0: {row!r}")
    if step.percent_bps is not None and not 0 <= step.percent_bps <= BPS_DENOMINATOR:
        raise ValueError(f"percent_bps must be within 0..{BPS_DENOMINATOR}: {row!r}")
    if step.flat_cents is not None and step.flat_cents < 0:
        raise ValueError(f"flat_cents must be >= 0: {row!r}")
    return step


@dataclass(frozen=True)
class DiscountSchedule:
    steps: tuple[DiscountStep, ...] = ()

    @classmethod
    def from_config(cls, rows) -> "DiscountSchedule":
        steps = sorted((_parse_step(row) for row in rows or []), key=lambda s: s.min_subtotal_cents)

        for prev, cur in zip(steps, steps[1:]):
            if cur.min_subtotal_cents == prev.min_subtotal_cents:
                raise ValueError(f"Duplicate discount threshold {cur.min_subtotal_cents}")
            if cur.kind != prev.kind:
                raise ValueError("A discount schedule cannot mix percent and flat steps")
            if cur.kind == "percent" and cur.percent_bps < prev.percent_bps:
                raise ValueError(f"Discount percentage decreases at {cur.min_subtotal_cents}")
            if cur.kind == "flat" and cur.flat_cents < prev.flat_cents:
                raise ValueError(f"Flat discount decreases at {cur.min_subtotal_cents}")

        return cls(steps=tuple(steps))

    def step_for(self, subtotal_cents: int) -> Optional[DiscountStep]:
        applicable = None
        for step in self.steps:
            if subtotal_cents >= step.min_subtotal_cents:
                applicable = step
            else:
                break
        return applicable


@dataclass(frozen=True)
class DiscountPolicy:
    retail: DiscountSchedule
    b2b: DiscountSchedule

    @classmethod
    def from_config(cls, config) -> "DiscountPolicy":
        return cls(
            retail=DiscountSchedule.from_config(config.get("HIGH_VALUE_DISCOUNT_TIERS")),
            b2b=DiscountSchedule.from_config(config.get("HIGH_VALUE_DISCOUNT_TIERS_B2B")),
        )

    def schedule_for(self, is_b2b: bool) -> DiscountSchedule:
        return self.b2b if is_b2b else self.retail


def get_discount_policy() -> DiscountPolicy:
    """Policy built once per app from config (see create_app)."""
    policy = current_app.extensions.get("discount_policy")
    if policy is None:
        policy = DiscountPolicy.from_config(current_app.config)
        current_app.extensions["discount_policy"] = policy
    return policy


@dataclass(frozen=True)
class HighValueDiscount:
    subtotal_cents: int
    discount_amount_cents: int
    discounted_total_cents: int
    step: Optional[DiscountStep] = None

    @property
    def is_eligible(self) -> bool:
        return self.discount_amount_cents > 0

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "discounted_total_cents": self.discounted_total_cents,
            "is_eligible": self.is_eligible,
            "step": self.step.to_dict() if self.step else None,
        }


def calculate_high_value_discount(
    subtotal_cents: int,
    is_b2b: bool,
    policy: Optional[DiscountPolicy] = None,
) -> HighValueDiscount:
    if subtotal_cents < 0:
        raise InvariantViolationError(
            "Subtotal cannot be negative",
            details={"subtotal_cents": subtotal_cents},
        )
    policy = policy or get_discount_policy()

    step = policy.schedule_for(is_b2b).step_for(subtotal_cents)
    amount = step.amount_for(subtotal_cents) if step else 0
    amount = max(0, min(amount, subtotal_cents))

    return HighValueDiscount(
        subtotal_cents=subtotal_cents,
        discount_amount_cents=amount,
        discounted_total_cents=subtotal_cents - amount,
        step=step,
    )
