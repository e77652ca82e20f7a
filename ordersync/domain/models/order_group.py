"""
Consolidated group of Whatnot orders.

Orders placed by the same customer during the same livestream ship
together as a single ShipStation order.
"""

from dataclasses import dataclass, field

from .order import MarketplaceOrder


@dataclass
class OrderGroup:
    """
    Orders sharing a session id and a customer username.

    Attributes:
        session_id: Human readable stream id (``YYMMDD-HHa``)
        orders: Orders in input order; the first one supplies the address
    """

    session_id: str
    orders: list[MarketplaceOrder] = field(default_factory=list)

    @property
    def first_order(self) -> MarketplaceOrder:
        if not self.orders:
            raise ValueError("Order group has no orders")
        return self.orders[0]

    @property
    def customer_username(self) -> str:
        return self.first_order.customer.username

    @property
    def key(self) -> str:
        return f"{self.session_id}:{self.customer_username}"

    @property
    def order_ids(self) -> list[str]:
        return [order.id for order in self.orders]

    def __len__(self) -> int:
        return len(self.orders)
