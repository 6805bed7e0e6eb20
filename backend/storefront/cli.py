# Overview: Flask CLI command groups for bootstrap, pricing inspection, promotions and shipping.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Bootstrap:
# - python -m flask pricing init-db
#   Create all tables (idempotent).
# - python -m flask pricing reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask pricing seed-demo
#   Demo catalog, customers, shipping bands and warehouses (idempotent).
#
# Pricing inspection:
# - python -m flask pricing quote --variant-id 1 --quantity 12 --tier ENTERPRISE_2
#   Show the unit price a line would resolve to and which rule produced it.
#
# Promotions:
# - python -m flask promotions tick
#   Run one promotion status pass and print activated/deactivated counts.
# - python -m flask promotions run
#   Run the promotion scheduler in the foreground until Ctrl+C.
#
# Shipping:
# - python -m flask shipping check
#   Report gaps and overlaps in the active shipping tiers.
# - python -m flask shipping tier 49.99
#   Show the tier selected for a subtotal (dollars).

import time
from datetime import timedelta

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db, PROMOTION_SCHEDULER_KEY
from .models import (
    BulkPriceBand,
    Customer,
    Promotion,
    SegmentPrice,
    ShippingTier,
    Variant,
    Warehouse,
    WarehouseStock,
)
from .money import format_cents, to_cents
from .services import promotion_service, shipping_service
from .services.errors import EngineError
from .services.pricing_service import quote_line_price
from .time_utils import utcnow


@click.group('pricing')
def pricing_group():
    """Schema bootstrap and pricing inspection commands."""


@pricing_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@pricing_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask pricing seed-demo' to load demo data.")


def _get_or_create(model, lookup: dict, **values):
    row = db.session.query(model).filter_by(**lookup).first()
    if row is None:
        row = model(**lookup, **values)
        db.session.add(row)
        db.session.flush()
        return row, True
    return row, False


@pricing_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Load demo data (idempotent):
    - Variants with segment prices and bulk bands
    - One customer per raw tier
    - Shipping bands $0-49.99 -> $9.99, $50-149.99 -> $4.99, $150+ -> free
    - Two warehouses (Chicago, Dallas)
    - One running and one scheduled coupon
    """
    click.echo("START Seeding demo data...")

    gloves, created = _get_or_create(
        Variant, {"sku": "GLV-NIT-100"},
        name="Nitrile Gloves (100)", regular_price_cents=1299, sale_price_cents=1099,
    )
    if created:
        gloves.segment_prices.append(SegmentPrice(customer_tier="B2C", regular_price_cents=1249, sale_price_cents=0))
        gloves.segment_prices.append(SegmentPrice(customer_tier="ENTERPRISE_1", regular_price_cents=999, sale_price_cents=0))
        gloves.bulk_prices.append(BulkPriceBand(min_qty=10, max_qty=49, price_cents=949))
        gloves.bulk_prices.append(BulkPriceBand(min_qty=50, max_qty=None, price_cents=849))

    masks, created = _get_or_create(
        Variant, {"sku": "MSK-N95-20"},
        name="N95 Masks (20)", regular_price_cents=2499, sale_price_cents=0,
    )
    if created:
        masks.segment_prices.append(SegmentPrice(customer_tier="ENTERPRISE_1", regular_price_cents=1999, sale_price_cents=1899))

    for tier in ("B2C", "B2B", "ENTERPRISE_1", "ENTERPRISE_2"):
        _get_or_create(Customer, {"email": f"{tier.lower()}@storefront.local"}, name=f"Demo {tier}", customer_tier=tier)

    if not db.session.query(ShippingTier).count():
        db.session.add_all([
            ShippingTier(min_subtotal_cents=0, max_subtotal_cents=4999, rate_cents=999, service_name="Standard", sort_order=1),
            ShippingTier(min_subtotal_cents=5000, max_subtotal_cents=14999, rate_cents=499, service_name="Standard", sort_order=2),
            ShippingTier(min_subtotal_cents=15000, max_subtotal_cents=None, rate_cents=0, service_name="Free Shipping", sort_order=3),
        ])

    chicago, created = _get_or_create(Warehouse, {"code": "CHI"}, name="Chicago DC", latitude=41.8781, longitude=-87.6298, sort_order=1)
    if created:
        chicago.stock.append(WarehouseStock(variant_id=gloves.id, quantity=500))
        chicago.stock.append(WarehouseStock(variant_id=masks.id, quantity=40, reserved_qty=10))
    dallas, created = _get_or_create(Warehouse, {"code": "DAL"}, name="Dallas DC", latitude=32.7767, longitude=-96.7970, sort_order=2)
    if created:
        dallas.stock.append(WarehouseStock(variant_id=gloves.id, quantity=80))

    now = utcnow()
    _get_or_create(
        Promotion, {"code": "WELCOME10"},
        name="Welcome 10%", promo_type="PERCENTAGE", discount_value=1000,
        starts_at=now - timedelta(days=1), expires_at=None,
    )
    _get_or_create(
        Promotion, {"code": "SHIPFREE"},
        name="Free shipping weekend", promo_type="FREE_SHIPPING", discount_value=0,
        starts_at=now + timedelta(days=2), expires_at=now + timedelta(days=4),
    )

    db.session.commit()
    click.echo("PASS Demo data ready. Run 'python -m flask promotions tick' to activate due coupons.")


@pricing_group.command('quote')
@click.option('--variant-id', type=int, required=True, help='Variant ID')
@click.option('--quantity', type=int, default=1, show_default=True, help='Line quantity')
@click.option('--tier', default=None, help='Raw customer tier (omit for guest)')
@with_appcontext
def quote_line(variant_id, quantity, tier):
    """Resolve a unit price the way the cart would."""
    variant = db.session.get(Variant, variant_id)
    if variant is None:
        raise click.ClickException(f"Variant {variant_id} not found")
    try:
        quote = quote_line_price(variant, quantity, tier)
    except EngineError as e:
        raise click.ClickException(str(e))
    click.echo(
        f"{variant.sku} x{quantity} tier={tier or 'guest'}: "
        f"{format_cents(quote.unit_price_cents)} each ({quote.source}), "
        f"line {format_cents(quote.unit_price_cents * quantity)}"
    )


@click.group('promotions')
def promotions_group():
    """Promotion lifecycle commands."""


@promotions_group.command('tick')
@with_appcontext
def promotions_tick():
    """Run one promotion status pass now."""
    result = promotion_service.run_promotion_scheduler_tick()
    click.echo(f"PASS activated={result.activated} deactivated={result.deactivated}")


@promotions_group.command('run')
@with_appcontext
def promotions_run():
    """Run the promotion scheduler in the foreground."""
    scheduler = current_app.extensions[PROMOTION_SCHEDULER_KEY]
    scheduler.start()
    click.echo(f"START Promotion scheduler running every {scheduler.interval_seconds}s (Ctrl+C to stop)")
    try:
        while scheduler.is_running():
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
        click.echo("STOP Promotion scheduler stopped")


@click.group('shipping')
def shipping_group():
    """Shipping tier inspection commands."""


@shipping_group.command('check')
@with_appcontext
def shipping_check():
    """Report gaps and overlaps in active shipping tiers."""
    report = shipping_service.audit_tiers()
    click.echo(f"Active tiers: {report['tiers']}")
    for gap in report["gaps"]:
        upper = format_cents(gap["to_cents"]) if gap["to_cents"] is not None else "and above"
        click.echo(f"WARN Gap: {format_cents(gap['from_cents'])} - {upper}")
    for overlap in report["overlaps"]:
        click.echo(f"WARN Overlap: tiers {overlap['tier_ids']} from {format_cents(overlap['from_cents'])}")
    if not report["gaps"] and not report["overlaps"]:
        click.echo("PASS Tiers cover every subtotal exactly once.")


@shipping_group.command('tier')
@click.argument('subtotal')
@with_appcontext
def shipping_tier(subtotal):
    """Show the tier selected for SUBTOTAL (dollars)."""
    try:
        selection = shipping_service.select_shipping_tier(to_cents(subtotal))
    except EngineError as e:
        raise click.ClickException(str(e))
    click.echo(f"{selection.service_name or 'Shipping'}: {format_cents(selection.rate_cents)} (tier {selection.tier_id})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(pricing_group)
    app.cli.add_command(promotions_group)
    app.cli.add_command(shipping_group)
