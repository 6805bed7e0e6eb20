from __future__ import annotations

from ..extensions import db


class ShippingTier(db.Model):
    """
    Subtotal band -> flat shipping rate.

    Active tiers are expected to partition [0, inf) without gaps, but this is
    not enforced; shipping_service handles gaps and overlaps explicitly.
    """
    __tablename__ = "shipping_tiers"
    __table_args__ = (
        db.CheckConstraint("min_subtotal_cents >= 0", name="ck_shipping_tiers_min"),
        db.CheckConstraint(
            "max_subtotal_cents IS NULL OR min_subtotal_cents <= max_subtotal_cents",
            name="ck_shipping_tiers_range",
        ),
        db.Index("ix_shipping_tiers_active_min", "is_active", "min_subtotal_cents"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    min_subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    max_subtotal_cents = db.Column(db.Integer, nullable=True)
    rate_cents = db.Column(db.Integer, nullable=False)
    service_name = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "min_subtotal_cents": self.min_subtotal_cents,
            "max_subtotal_cents": self.max_subtotal_cents,
            "rate_cents": self.rate_cents,
            "service_name": self.service_name,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }
