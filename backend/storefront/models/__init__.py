from .customers import Customer
from .catalog import Variant, SegmentPrice, BulkPriceBand
from .carts import Cart, CartLine
from .promotions import Promotion
from .shipping import ShippingTier
from .warehouses import Warehouse, WarehouseStock

__all__ = [
    'Customer',
    'Variant', 'SegmentPrice', 'BulkPriceBand',
    'Cart', 'CartLine',
    'Promotion',
    'ShippingTier',
    'Warehouse', 'WarehouseStock',
]
