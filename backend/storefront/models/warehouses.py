from __future__ import annotations

from ..extensions import db


class Warehouse(db.Model):
    """
    Fulfillment location.

    sort_order (then id) is the configuration order used to break distance
    ties deterministically.
    """
    __tablename__ = "warehouses"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_warehouses_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    stock = db.relationship(
        "WarehouseStock",
        backref="warehouse",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }


class WarehouseStock(db.Model):
    """On-hand and reserved quantity of one variant at one warehouse."""
    __tablename__ = "warehouse_stock"
    __table_args__ = (
        db.UniqueConstraint("warehouse_id", "variant_id", name="uq_warehouse_stock_warehouse_variant"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_qty = db.Column(db.Integer, nullable=False, default=0)
    sell_when_out_of_stock = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "reserved_qty": self.reserved_qty,
            "sell_when_out_of_stock": self.sell_when_out_of_stock,
        }
