import pytest

from storefront.services.discount_service import (
    DiscountPolicy,
    DiscountSchedule,
    calculate_high_value_discount,
    get_discount_policy,
    percent_of,
)
from storefront.services.errors import InvariantViolationError


def _policy(retail=(), b2b=()):
    return DiscountPolicy(
        retail=DiscountSchedule.from_config(list(retail)),
        b2b=DiscountSchedule.from_config(list(b2b)),
    )


STEPPED = _policy(
    retail=[
        {"min_subtotal_cents": 100_000, "percent_bps": 200},
        {"min_subtotal_cents": 50_000, "percent_bps": 100},
    ],
    b2b=[{"min_subtotal_cents": 500_000, "percent_bps": 1000}],
)


def test_below_first_threshold_no_discount():
    result = calculate_high_value_discount(49_999, is_b2b=False, policy=STEPPED)
    assert result.discount_amount_cents == 0
    assert result.discounted_total_cents == 49_999
    assert not result.is_eligible


def test_steps_are_sorted_and_applied():
    assert calculate_high_value_discount(50_000, False, STEPPED).discount_amount_cents == 500
    assert calculate_high_value_discount(100_000, False, STEPPED).discount_amount_cents == 2_000


def test_b2b_schedule_is_independent():
    assert calculate_high_value_discount(400_000, True, STEPPED).discount_amount_cents == 0
    result = calculate_high_value_discount(500_000, True, STEPPED)
    assert result.discount_amount_cents == 50_000
    assert result.discounted_total_cents == 450_000
    assert result.step.percent_bps == 1000


def test_discount_never_decreases_and_total_never_negative():
    policy = _policy(retail=[
        {"min_subtotal_cents": 0, "flat_cents": 100},
        {"min_subtotal_cents": 1_000, "flat_cents": 500},
        {"min_subtotal_cents": 10_000, "flat_cents": 2_000},
    ])
    previous = 0
    for subtotal in range(0, 20_000, 37):
        result = calculate_high_value_discount(subtotal, False, policy)
        assert result.discounted_total_cents >= 0
        assert result.discount_amount_cents >= previous
        assert result.discount_amount_cents + result.discounted_total_cents == subtotal
        previous = result.discount_amount_cents


def test_flat_discount_clamped_to_subtotal():
    policy = _policy(retail=[{"min_subtotal_cents": 0, "flat_cents": 5_000}])
    result = calculate_high_value_discount(1_200, False, policy)
    assert result.discount_amount_cents == 1_200
    assert result.discounted_total_cents == 0


def test_negative_subtotal_fails_fast():
    with pytest.raises(InvariantViolationError):
        calculate_high_value_discount(-1, False, STEPPED)


@pytest.mark.parametrize("rows", [
    [{"min_subtotal_cents": 0, "percent_bps": 500}, {"min_subtotal_cents": 100, "percent_bps": 200}],
    [{"min_subtotal_cents": 0, "flat_cents": 500}, {"min_subtotal_cents": 100, "flat_cents": 200}],
    [{"min_subtotal_cents": 0, "percent_bps": 100}, {"min_subtotal_cents": 100, "flat_cents": 200}],
    [{"min_subtotal_cents": 100, "percent_bps": 100}, {"min_subtotal_cents": 100, "percent_bps": 200}],
    [{"min_subtotal_cents": 0, "percent_bps": 100, "flat_cents": 100}],
    [{"min_subtotal_cents": 0}],
    [{"percent_bps": 100}],
    [{"min_subtotal_cents": 0, "percent_bps": 20_000}],
    [{"min_subtotal_cents": -5, "percent_bps": 100}],
])
def test_invalid_schedules_rejected(rows):
    with pytest.raises(ValueError):
        DiscountSchedule.from_config(rows)


def test_percent_rounds_half_up():
    assert percent_of(5, 1000) == 1  # 0.5 cent -> 1
    assert percent_of(4, 1000) == 0


def test_default_policy_from_app_config(app):
    with app.app_context():
        policy = get_discount_policy()
        assert calculate_high_value_discount(499_999, True, policy).discount_amount_cents == 0
        assert calculate_high_value_discount(500_000, True, policy).discount_amount_cents == 50_000
        assert calculate_high_value_discount(900_000, False, policy).discount_amount_cents == 0
