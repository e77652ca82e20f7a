"""
GraphQL queries for the Whatnot seller API.

Structure:
- orders: Order and order-item reads
- tracking: Tracking code mutation
"""

from .orders import ORDER_ITEMS_QUERY, ORDERS_QUERY
from .tracking import ADD_TRACKING_CODE_MUTATION

__all__ = [
    "ORDERS_QUERY",
    "ORDER_ITEMS_QUERY",
    "ADD_TRACKING_CODE_MUTATION",
]
