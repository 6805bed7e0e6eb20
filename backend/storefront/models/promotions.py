from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class Promotion(db.Model):
    """
    Coupon-code promotion.

    is_active is a cached flag maintained by the promotion scheduler. The
    source of truth for eligibility is always starts_at / expires_at against
    wall-clock time, which redemption checks directly.

    Supports PERCENTAGE (discount_value in basis points), FIXED_AMOUNT
    (discount_value in cents) and FREE_SHIPPING.
    """
    __tablename__ = "promotions"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_promotions_code"),
        db.Index("ix_promotions_active_window", "is_active", "starts_at", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=True)

    promo_type = db.Column(db.String(32), nullable=False)  # PERCENTAGE, FIXED_AMOUNT, FREE_SHIPPING
    discount_value = db.Column(db.Integer, nullable=False, default=0)
    max_discount_cents = db.Column(db.Integer, nullable=True)
    min_order_amount_cents = db.Column(db.Integer, nullable=True)

    starts_at = db.Column(db.DateTime, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=False)

    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Promotion id={self.id} code={self.code!r} active={self.is_active}>"

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "promo_type": self.promo_type,
            "discount_value": self.discount_value,
            "max_discount_cents": self.max_discount_cents,
            "min_order_amount_cents": self.min_order_amount_cents,
            "starts_at": to_utc_z(self.starts_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_active": self.is_active,
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
