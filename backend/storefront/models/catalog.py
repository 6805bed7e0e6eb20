from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class Variant(db.Model):
    """
    Purchasable catalog item.

    Catalog rows are administrative data: the pricing engine only reads them.
    Authoritative storage in cents; sale_price_cents == 0 means "no sale".
    """
    __tablename__ = "variants"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_variants_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    regular_price_cents = db.Column(db.Integer, nullable=False)
    sale_price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    segment_prices = db.relationship(
        "SegmentPrice",
        backref="variant",
        lazy="selectin",
        order_by="SegmentPrice.id",
        cascade="all, delete-orphan",
    )
    bulk_prices = db.relationship(
        "BulkPriceBand",
        backref="variant",
        lazy="selectin",
        order_by="BulkPriceBand.min_qty",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Variant id={self.id} sku={self.sku!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "regular_price_cents": self.regular_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "is_active": self.is_active,
            "segment_prices": [sp.to_dict() for sp in self.segment_prices],
            "bulk_prices": [bp.to_dict() for bp in self.bulk_prices],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SegmentPrice(db.Model):
    """Per canonical pricing tier price for a variant. One row per (variant, tier)."""
    __tablename__ = "segment_prices"
    __table_args__ = (
        db.UniqueConstraint("variant_id", "customer_tier", name="uq_segment_prices_variant_tier"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)
    customer_tier = db.Column(db.String(32), nullable=False)

    regular_price_cents = db.Column(db.Integer, nullable=False)
    sale_price_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "customer_tier": self.customer_tier,
            "regular_price_cents": self.regular_price_cents,
            "sale_price_cents": self.sale_price_cents,
        }


class BulkPriceBand(db.Model):
    """
    Quantity band with a flat unit price.

    max_qty NULL = unbounded. Bands for one variant must not overlap; the
    database only enforces min_qty <= max_qty, overlap is handled by the
    resolver's tie-break.
    """
    __tablename__ = "bulk_price_bands"
    __table_args__ = (
        db.CheckConstraint("min_qty >= 1", name="ck_bulk_price_bands_min_qty"),
        db.CheckConstraint("max_qty IS NULL OR min_qty <= max_qty", name="ck_bulk_price_bands_range"),
        db.Index("ix_bulk_price_bands_variant_min", "variant_id", "min_qty"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)
    min_qty = db.Column(db.Integer, nullable=False)
    max_qty = db.Column(db.Integer, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "min_qty": self.min_qty,
            "max_qty": self.max_qty,
            "price_cents": self.price_cents,
        }
