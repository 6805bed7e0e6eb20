from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class Customer(db.Model):
    """
    Authenticated storefront customer.

    customer_tier holds the RAW tier (B2C, B2B, ENTERPRISE_1, ENTERPRISE_2).
    Pricing never reads it directly; it goes through
    pricing_service.canonical_pricing_tier(). Guests have no row at all.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_customers_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=True)

    customer_tier = db.Column(db.String(32), nullable=False, default="B2C")

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Customer id={self.id} email={self.email!r} tier={self.customer_tier}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "customer_tier": self.customer_tier,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
