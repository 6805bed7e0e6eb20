from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class Cart(db.Model):
    """
    Persisted cart of an authenticated customer.

    Guest carts never reach this table; they arrive as a GuestCartSnapshot
    payload at login and are merged in (cart_service.merge_guest_cart).
    The subtotal is never stored: it is recomputed on every read.
    """
    __tablename__ = "carts"
    __table_args__ = (
        db.Index("ix_carts_customer_active", "customer_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("carts", lazy=True))
    lines = db.relationship(
        "CartLine",
        backref="cart",
        lazy="selectin",
        order_by="CartLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "is_active": self.is_active,
            "lines": [line.to_dict() for line in self.lines],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CartLine(db.Model):
    """
    One variant in a cart.

    resolved_unit_price_cents is the price resolved when the item was added.
    When present and positive it is authoritative and resolution is skipped.
    """
    __tablename__ = "cart_lines"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "variant_id", name="uq_cart_lines_cart_variant"),
        db.CheckConstraint("quantity > 0", name="ck_cart_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    resolved_unit_price_cents = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    variant = db.relationship("Variant", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "resolved_unit_price_cents": self.resolved_unit_price_cents,
        }
