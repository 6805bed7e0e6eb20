"""
HTTP API tests.

Verifies:
- Health reports database and scheduler state
- Shopper identity via X-Customer-Id (guests allowed on checkout, not on cart)
- Checkout quote composes pricing, shipping, coupon and dispatch
- Engine failures map to typed, generic responses
"""

from datetime import timedelta

import pytest

from storefront.models import CartLine
from storefront.routes.responses import GENERIC_RETRY_MESSAGE
from storefront.time_utils import utcnow

DESTINATION = {"latitude": 41.88, "longitude": -87.63}
ADMIN_HEADERS = {"X-Admin-Token": "test-admin-token"}


def customer_headers(customer):
    return {"X-Customer-Id": str(customer.id)}


@pytest.fixture
def stocked_variant(db_session, make_variant, make_warehouse, standard_shipping_tiers):
    variant = make_variant(regular=2000)
    make_warehouse(41.8781, -87.6298, stock={variant.id: 100}, code="CHI")
    return variant


# =============================================================================
# SYSTEM
# =============================================================================


def test_health(client, db_session):
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["promotion_scheduler"] == {"enabled": False, "running": False}


# =============================================================================
# SHOPPER IDENTITY
# =============================================================================


class TestShopperIdentity:
    def test_cart_requires_customer(self, client, db_session):
        assert client.get("/api/cart").status_code == 401

    def test_malformed_header(self, client, db_session):
        assert client.get("/api/cart", headers={"X-Customer-Id": "abc"}).status_code == 400

    def test_inactive_customer(self, client, make_customer):
        customer = make_customer("B2C", is_active=False)
        assert client.get("/api/cart", headers=customer_headers(customer)).status_code == 401


# =============================================================================
# CART
# =============================================================================


class TestCart:
    def test_add_then_read_totals(self, client, make_customer, stocked_variant):
        customer = make_customer("B2C")

        resp = client.post(
            "/api/cart/items",
            json={"variant_id": stocked_variant.id, "quantity": 2},
            headers=customer_headers(customer),
        )
        assert resp.status_code == 201
        assert resp.get_json()["line"]["resolved_unit_price_cents"] == 2000

        resp = client.get("/api/cart", headers=customer_headers(customer))
        assert resp.status_code == 200
        assert resp.get_json()["totals"]["subtotal_cents"] == 4000

    def test_add_zero_quantity_rejected(self, client, make_customer, stocked_variant):
        customer = make_customer("B2C")

        resp = client.post(
            "/api/cart/items",
            json={"variant_id": stocked_variant.id, "quantity": 0},
            headers=customer_headers(customer),
        )

        assert resp.status_code == 422
        assert resp.get_json()["code"] == "invariant_violation"

    def test_merge_returns_cleared_guest_cart(self, client, db_session, make_customer, stocked_variant):
        customer = make_customer("B2C")
        client.post(
            "/api/cart/items",
            json={"variant_id": stocked_variant.id, "quantity": 3},
            headers=customer_headers(customer),
        )

        resp = client.post(
            "/api/cart/merge",
            json={"items": [{"variant_id": stocked_variant.id, "quantity": 2}]},
            headers=customer_headers(customer),
        )

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["guest_cart"] == {"items": []}
        assert body["merge"]["updated_variant_ids"] == [stocked_variant.id]
        assert body["totals"]["subtotal_cents"] == 5 * 2000
        db_session.expire_all()
        assert db_session.query(CartLine).one().quantity == 5

    def test_merge_rejects_bad_quantity(self, client, make_customer, stocked_variant):
        customer = make_customer("B2C")

        resp = client.post(
            "/api/cart/merge",
            json={"items": [{"variant_id": stocked_variant.id, "quantity": "two"}]},
            headers=customer_headers(customer),
        )

        assert resp.status_code == 400

    def test_clear(self, client, make_customer, stocked_variant):
        customer = make_customer("B2C")
        client.post(
            "/api/cart/items",
            json={"variant_id": stocked_variant.id, "quantity": 1},
            headers=customer_headers(customer),
        )

        resp = client.delete("/api/cart", headers=customer_headers(customer))

        assert resp.get_json() == {"removed": 1}


# =============================================================================
# CHECKOUT
# =============================================================================


class TestCheckoutQuote:
    def test_guest_quote(self, client, stocked_variant):
        resp = client.post("/api/checkout/quote", json={
            "items": [{"variant_id": stocked_variant.id, "quantity": 3}],
            "destination": DESTINATION,
        })

        assert resp.status_code == 200
        quote = resp.get_json()["quote"]
        assert quote["totals"]["subtotal_cents"] == 6000
        assert quote["shipping"]["rate_cents"] == 499
        assert quote["dispatch"]["warehouse_code"] == "CHI"
        assert quote["dispatch"]["stock_available"] is True
        assert quote["total_cents"] == 6499

    def test_client_unit_price_is_ignored(self, client, stocked_variant):
        resp = client.post("/api/checkout/quote", json={
            "items": [{"variant_id": stocked_variant.id, "quantity": 3, "unit_price_cents": 1}],
            "destination": DESTINATION,
        })

        assert resp.status_code == 200
        totals = resp.get_json()["quote"]["totals"]
        assert totals["subtotal_cents"] == 6000
        assert totals["lines"][0]["price_source"] == "base"

    def test_quote_uses_signed_in_cart(self, client, make_customer, stocked_variant):
        customer = make_customer("B2C")
        client.post(
            "/api/cart/items",
            json={"variant_id": stocked_variant.id, "quantity": 1},
            headers=customer_headers(customer),
        )

        resp = client.post(
            "/api/checkout/quote",
            json={"destination": DESTINATION},
            headers=customer_headers(customer),
        )

        assert resp.status_code == 200
        assert resp.get_json()["quote"]["total_cents"] == 2000 + 999

    def test_quote_with_coupon(self, client, make_promotion, stocked_variant):
        make_promotion("WELCOME10", starts_at=utcnow() - timedelta(days=1))

        resp = client.post("/api/checkout/quote", json={
            "items": [{"variant_id": stocked_variant.id, "quantity": 3}],
            "destination": DESTINATION,
            "coupon_code": "welcome10",
        })

        quote = resp.get_json()["quote"]
        assert quote["coupon"] == {"code": "WELCOME10", "promo_type": "PERCENTAGE", "discount_cents": 600}
        assert quote["total_cents"] == 6000 + 499 - 600

    def test_invalid_coupon(self, client, stocked_variant):
        resp = client.post("/api/checkout/quote", json={
            "items": [{"variant_id": stocked_variant.id, "quantity": 1}],
            "destination": DESTINATION,
            "coupon_code": "NOPE",
        })

        assert resp.status_code == 422
        assert resp.get_json()["code"] == "coupon_invalid"

    def test_shipping_gap_is_generic_error(self, client, db_session, make_variant, make_warehouse):
        variant = make_variant(regular=2000)
        make_warehouse(41.8781, -87.6298, stock={variant.id: 10})

        resp = client.post("/api/checkout/quote", json={
            "items": [{"variant_id": variant.id, "quantity": 1}],
            "destination": DESTINATION,
        })

        assert resp.status_code == 422
        assert resp.get_json() == {"error": GENERIC_RETRY_MESSAGE, "code": "configuration_gap"}

    def test_empty_cart(self, client, make_customer, stocked_variant):
        customer = make_customer("B2C")
        resp = client.post("/api/checkout/quote", json={"destination": DESTINATION}, headers=customer_headers(customer))
        assert resp.status_code == 400

    def test_unknown_variant(self, client, stocked_variant):
        resp = client.post("/api/checkout/quote", json={
            "items": [{"variant_id": 424242, "quantity": 1}],
            "destination": DESTINATION,
        })
        assert resp.status_code == 404


class TestShippingTierRoute:
    @pytest.mark.parametrize("query, rate", [
        ("subtotal=49.99", 999),
        ("subtotal=50", 499),
        ("subtotal_cents=50000", 0),
    ])
    def test_lookup(self, client, standard_shipping_tiers, query, rate):
        resp = client.get(f"/api/shipping/tier?{query}")
        assert resp.status_code == 200
        assert resp.get_json()["shipping"]["rate_cents"] == rate

    def test_bad_amount(self, client, standard_shipping_tiers):
        assert client.get("/api/shipping/tier?subtotal=lots").status_code == 400

    def test_missing_amount(self, client, standard_shipping_tiers):
        assert client.get("/api/shipping/tier").status_code == 400


def test_dispatch_route(client, stocked_variant):
    resp = client.post("/api/checkout/dispatch", json={
        "destination": DESTINATION,
        "items": [{"variant_id": stocked_variant.id, "quantity": 200}],
    })

    assert resp.status_code == 200
    dispatch = resp.get_json()["dispatch"]
    assert dispatch["stock_available"] is False
    assert dispatch["shipping"] is None


# =============================================================================
# PROMOTIONS
# =============================================================================


class TestPromotionRoutes:
    def test_coupon_lookup(self, client, make_promotion):
        make_promotion("SPRING", starts_at=utcnow() - timedelta(hours=1))

        resp = client.get("/api/promotions/code/spring")

        assert resp.status_code == 200
        assert resp.get_json()["code"] == "SPRING"

    def test_coupon_below_minimum(self, client, make_promotion):
        make_promotion("BIG", starts_at=utcnow() - timedelta(hours=1), min_order_amount_cents=10_000)

        resp = client.get("/api/promotions/code/BIG?subtotal_cents=500")

        assert resp.status_code == 422

    def test_manual_tick(self, client, make_promotion):
        make_promotion("SPRING", starts_at=utcnow() - timedelta(hours=1))

        resp = client.post("/api/promotions/scheduler/tick", headers=ADMIN_HEADERS)

        assert resp.status_code == 200
        assert resp.get_json()["activated"] == 1

    def test_manual_tick_requires_admin_token(self, client, make_promotion):
        make_promotion("SPRING", starts_at=utcnow() - timedelta(hours=1))

        assert client.post("/api/promotions/scheduler/tick").status_code == 401
        resp = client.post("/api/promotions/scheduler/tick", headers={"X-Admin-Token": "wrong"})
        assert resp.status_code == 403

    def test_eligible_promotions(self, client, make_promotion):
        now = utcnow()
        make_promotion("RUNNING", starts_at=now - timedelta(hours=1), is_active=False)
        make_promotion("ENDED", starts_at=now - timedelta(days=3), expires_at=now - timedelta(days=1), is_active=True)
        make_promotion("LATER", starts_at=now + timedelta(days=1))

        resp = client.get("/api/promotions/eligible")

        assert resp.status_code == 200
        assert [p["code"] for p in resp.get_json()["promotions"]] == ["RUNNING"]

    def test_scheduler_status(self, client, db_session):
        assert client.get("/api/promotions/scheduler").get_json() == {"running": False, "interval_seconds": 60}
