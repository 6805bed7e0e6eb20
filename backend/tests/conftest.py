"""
Pytest fixtures for storefront engine tests.

Provides the application on an in-memory database, a per-test clean session,
and small factories for catalog, customer, shipping and warehouse rows.
"""

from datetime import datetime

import pytest
from storefront import create_app
from storefront.extensions import db
from storefront.models import (
    BulkPriceBand,
    Customer,
    Promotion,
    SegmentPrice,
    ShippingTier,
    Variant,
    Warehouse,
    WarehouseStock,
)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PROMOTION_SCHEDULER_ENABLED': False,
        'ADMIN_API_TOKEN': 'test-admin-token',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Clear all data (keep schema) before each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture
def make_customer(db_session):
    counter = {"n": 0}

    def _make(tier="B2C", **kwargs):
        counter["n"] += 1
        customer = Customer(
            email=kwargs.pop("email", f"customer{counter['n']}@example.com"),
            customer_tier=tier,
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture
def make_variant(db_session):
    counter = {"n": 0}

    def _make(regular=1000, sale=0, segments=(), bands=(), **kwargs):
        """segments: (tier, regular, sale) tuples; bands: (min_qty, max_qty, price) tuples."""
        counter["n"] += 1
        variant = Variant(
            sku=kwargs.pop("sku", f"SKU-{counter['n']:03d}"),
            name=kwargs.pop("name", f"Variant {counter['n']}"),
            regular_price_cents=regular,
            sale_price_cents=sale,
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )
        for tier, seg_regular, seg_sale in segments:
            variant.segment_prices.append(
                SegmentPrice(customer_tier=tier, regular_price_cents=seg_regular, sale_price_cents=seg_sale)
            )
        for min_qty, max_qty, price in bands:
            variant.bulk_prices.append(BulkPriceBand(min_qty=min_qty, max_qty=max_qty, price_cents=price))
        db_session.add(variant)
        db_session.commit()
        return variant

    return _make


@pytest.fixture
def standard_shipping_tiers(db_session):
    """$0-49.99 -> $9.99, $50-149.99 -> $4.99, $150+ -> free."""
    tiers = [
        ShippingTier(min_subtotal_cents=0, max_subtotal_cents=4999, rate_cents=999, service_name="Standard", is_active=True, sort_order=1),
        ShippingTier(min_subtotal_cents=5000, max_subtotal_cents=14999, rate_cents=499, service_name="Standard", is_active=True, sort_order=2),
        ShippingTier(min_subtotal_cents=15000, max_subtotal_cents=None, rate_cents=0, service_name="Free Shipping", is_active=True, sort_order=3),
    ]
    db_session.add_all(tiers)
    db_session.commit()
    return tiers


@pytest.fixture
def make_warehouse(db_session):
    counter = {"n": 0}

    def _make(latitude, longitude, stock=None, **kwargs):
        """stock: {variant_id: quantity}"""
        counter["n"] += 1
        warehouse = Warehouse(
            code=kwargs.pop("code", f"WH{counter['n']}"),
            name=kwargs.pop("name", f"Warehouse {counter['n']}"),
            latitude=latitude,
            longitude=longitude,
            is_active=kwargs.pop("is_active", True),
            sort_order=kwargs.pop("sort_order", counter["n"]),
        )
        for variant_id, quantity in (stock or {}).items():
            warehouse.stock.append(WarehouseStock(variant_id=variant_id, quantity=quantity, reserved_qty=0))
        db_session.add(warehouse)
        db_session.commit()
        return warehouse

    return _make


@pytest.fixture
def make_promotion(db_session):
    def _make(code, starts_at: datetime, expires_at=None, is_active=False, **kwargs):
        promo = Promotion(
            code=code,
            name=kwargs.pop("name", code),
            promo_type=kwargs.pop("promo_type", "PERCENTAGE"),
            discount_value=kwargs.pop("discount_value", 1000),
            starts_at=starts_at,
            expires_at=expires_at,
            is_active=is_active,
            usage_count=kwargs.pop("usage_count", 0),
            **kwargs,
        )
        db_session.add(promo)
        db_session.commit()
        return promo

    return _make

