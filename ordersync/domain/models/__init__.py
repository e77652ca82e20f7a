"""
Domain models for business entities.

These models represent the Whatnot and ShipStation concepts the
synchronization works with.
"""

from .order import Customer, LineItem, MarketplaceOrder, OrderStatus, ShippingAddress, TrackingInfo
from .order_group import OrderGroup
from .shipment import Shipment
from .shipping_order import ShippingAddressBlock, ShippingOrder, ShippingOrderItem

__all__ = [
    "Customer",
    "LineItem",
    "MarketplaceOrder",
    "OrderStatus",
    "ShippingAddress",
    "TrackingInfo",
    "OrderGroup",
    "Shipment",
    "ShippingAddressBlock",
    "ShippingOrder",
    "ShippingOrderItem",
]
