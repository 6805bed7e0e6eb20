# Overview: Dispatch warehouse selection by great-circle distance and stock sufficiency.

"""
Dispatch selection (authoritative)

- Candidates: active warehouses, in configuration order (sort_order, id).
- Available stock of a variant = max(0, quantity - reserved_qty); a stock row
  with sell_when_out_of_stock is always sufficient; no stock row = 0.
- Fully stocked: every required variant is sufficient at that one warehouse.
- Pick the nearest fully stocked warehouse (stock_available=True); if none,
  the nearest warehouse overall (stock_available=False, caller may split).
- Equal distances: earlier in configuration order wins.
- No active warehouse: ConfigurationGapError.

This module only reads inventory. Reservation and order splitting happen
elsewhere.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from ..extensions import db
from ..models import Warehouse
from .errors import ConfigurationGapError, InvalidPayloadError, InvariantViolationError
from .shipping_service import ShippingSelection, select_shipping_tier

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0 or not -180.0 <= self.longitude <= 180.0:
            raise InvalidPayloadError(
                "Coordinates out of range",
                details={"latitude": self.latitude, "longitude": self.longitude},
            )

    @classmethod
    def from_payload(cls, payload) -> "Coordinates":
        if not isinstance(payload, dict):
            raise InvalidPayloadError("destination must be an object with latitude and longitude")
        try:
            return cls(latitude=float(payload["latitude"]), longitude=float(payload["longitude"]))
        except (KeyError, TypeError, ValueError):
            raise InvalidPayloadError("destination must be an object with latitude and longitude")

    def to_dict(self) -> dict:
        return {"latitude": self.latitude, "longitude": self.longitude}


def great_circle_distance_km(a: Coordinates, b: Coordinates) -> float:
    """Haversine distance in kilometres."""
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


@dataclass(frozen=True)
class DispatchPlan:
    warehouse_id: int
    warehouse_code: Optional[str]
    warehouse_name: Optional[str]
    distance_km: float
    stock_available: bool
    coordinates: Coordinates
    stock_details: dict = field(default_factory=dict)
    shipping: Optional[ShippingSelection] = None

    def to_dict(self) -> dict:
        return {
            "warehouse_id": self.warehouse_id,
            "warehouse_code": self.warehouse_code,
            "warehouse_name": self.warehouse_name,
            "distance_km": round(self.distance_km, 3),
            "stock_available": self.stock_available,
            "coordinates": self.coordinates.to_dict(),
            "stock_details": {str(k): v for k, v in self.stock_details.items()},
            "shipping": self.shipping.to_dict() if self.shipping else None,
        }


def list_active_warehouses() -> list[Warehouse]:
    return (
        db.session.query(Warehouse)
        .filter_by(is_active=True)
        .order_by(Warehouse.sort_order, Warehouse.id)
        .all()
    )


def _validate_required(required_quantities: Mapping[int, int]) -> dict[int, int]:
    required = {}
    for variant_id, qty in required_quantities.items():
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise InvariantViolationError(
                "Required quantity must be a positive integer",
                details={"variant_id": variant_id, "quantity": qty},
            )
        required[variant_id] = qty
    return required


def stock_details_for(warehouse, required: Mapping[int, int]) -> tuple[bool, dict]:
    """(fully_stocked, {variant_id: {"available", "required"}}) for one warehouse."""
    rows = {row.variant_id: row for row in (warehouse.stock or [])}
    sufficient = True
    details = {}
    for variant_id, qty in required.items():
        row = rows.get(variant_id)
        if row is None:
            available = 0
            ok = False
        else:
            available = max(0, (row.quantity or 0) - (row.reserved_qty or 0))
            ok = available >= qty or bool(row.sell_when_out_of_stock)
        details[variant_id] = {"available": available, "required": qty}
        sufficient = sufficient and ok
    return sufficient, details


def select_warehouse(
    destination: Coordinates,
    required_quantities: Mapping[int, int],
    warehouses: Optional[Iterable] = None,
    subtotal_cents: Optional[int] = None,
) -> DispatchPlan:
    """
    Choose the dispatch warehouse for a destination and required quantities.

    When subtotal_cents is given the plan also carries the shipping tier for it.
    """
    required = _validate_required(required_quantities)
    candidates = list_active_warehouses() if warehouses is None else [w for w in warehouses if w.is_active]
    if not candidates:
        logger.error("No active warehouses configured")
        raise ConfigurationGapError("No active warehouse available for dispatch")

    fully_stocked = []
    partially_stocked = []
    for warehouse in candidates:
        coords = Coordinates(latitude=warehouse.latitude, longitude=warehouse.longitude)
        distance = great_circle_distance_km(destination, coords)
        sufficient, details = stock_details_for(warehouse, required)
        option = (distance, warehouse, coords, details)
        (fully_stocked if sufficient else partially_stocked).append(option)

    # min() keeps the first of equal distances, i.e. configuration order.
    if fully_stocked:
        distance, warehouse, coords, details = min(fully_stocked, key=lambda o: o[0])
        stock_available = True
    else:
        distance, warehouse, coords, details = min(partially_stocked, key=lambda o: o[0])
        stock_available = False
        logger.info(
            "No single warehouse can fill %d variant(s); nearest partial is warehouse_id=%s",
            len(required),
            warehouse.id,
        )

    shipping = select_shipping_tier(subtotal_cents) if subtotal_cents is not None else None
    return DispatchPlan(
        warehouse_id=warehouse.id,
        warehouse_code=getattr(warehouse, "code", None),
        warehouse_name=getattr(warehouse, "name", None),
        distance_km=distance,
        stock_available=stock_available,
        coordinates=coords,
        stock_details=details,
        shipping=shipping,
    )
