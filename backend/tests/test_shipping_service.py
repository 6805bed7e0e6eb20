import logging

import pytest

from storefront.models import ShippingTier
from storefront.services.errors import ConfigurationGapError, InvariantViolationError
from storefront.services.shipping_service import audit_tiers, select_shipping_tier


def _tier(id, min_cents, max_cents, rate, sort_order=0, is_active=True):
    return ShippingTier(
        id=id,
        min_subtotal_cents=min_cents,
        max_subtotal_cents=max_cents,
        rate_cents=rate,
        service_name=f"Tier {id}",
        sort_order=sort_order,
        is_active=is_active,
    )


@pytest.mark.parametrize("subtotal, rate", [
    (0, 999),
    (4_999, 999),
    (5_000, 499),
    (14_999, 499),
    (15_000, 0),
    (50_000, 0),
])
def test_standard_bands(db_session, standard_shipping_tiers, subtotal, rate):
    assert select_shipping_tier(subtotal).rate_cents == rate


def test_gap_raises(db_session):
    tiers = [_tier(1, 0, 4_999, 999), _tier(2, 10_000, None, 0)]

    with pytest.raises(ConfigurationGapError) as exc:
        select_shipping_tier(7_500, tiers)
    assert exc.value.details["subtotal_cents"] == 7_500


def test_no_tiers_at_all(db_session):
    with pytest.raises(ConfigurationGapError):
        select_shipping_tier(1_000)


def test_overlap_prefers_highest_minimum(caplog):
    tiers = [_tier(1, 0, None, 999), _tier(2, 5_000, None, 0)]

    with caplog.at_level(logging.WARNING, logger="storefront.services.shipping_service"):
        selection = select_shipping_tier(6_000, tiers)

    assert selection.tier_id == 2
    assert "Overlapping shipping tiers" in caplog.text


def test_overlap_same_minimum_uses_sort_order():
    tiers = [_tier(1, 0, None, 999, sort_order=2), _tier(2, 0, None, 500, sort_order=1)]
    assert select_shipping_tier(100, tiers).tier_id == 2


def test_inactive_tiers_ignored():
    tiers = [_tier(1, 0, None, 999), _tier(2, 5_000, None, 0, is_active=False)]
    assert select_shipping_tier(6_000, tiers).rate_cents == 999


def test_negative_subtotal_rejected():
    with pytest.raises(InvariantViolationError):
        select_shipping_tier(-1, [_tier(1, 0, None, 999)])


def test_audit_clean_configuration(db_session, standard_shipping_tiers):
    assert audit_tiers() == {"tiers": 3, "gaps": [], "overlaps": []}


def test_audit_reports_gaps_and_overlaps():
    tiers = [
        _tier(1, 100, 4_999, 999),
        _tier(2, 4_000, 9_999, 499),
        _tier(3, 20_000, 30_000, 0),
    ]

    report = audit_tiers(tiers)

    assert report["gaps"] == [
        {"from_cents": 0, "to_cents": 99},
        {"from_cents": 10_000, "to_cents": 19_999},
        {"from_cents": 30_001, "to_cents": None},
    ]
    assert report["overlaps"] == [{"tier_ids": [1, 2], "from_cents": 4_000}]
