"""
Whatnot order domain model.

Immutable snapshot of one marketplace order as returned by the Whatnot
seller GraphQL API. The core never mutates these objects.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from ordersync.domain.value_objects.money import Money
from ordersync.utils.formatting import parse_datetime


class OrderStatus:
    """Whatnot order statuses the sync cares about."""

    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    # Only this status is eligible for shipment
    ELIGIBLE = PROCESSING


@dataclass(frozen=True)
class Customer:
    id: str | None
    username: str
    display_name: str | None = None
    country_code: str | None = None

    @classmethod
    def from_graphql(cls, node: dict | None) -> "Customer":
        node = node or {}
        return cls(
            id=node.get("id"),
            username=node.get("username") or "",
            display_name=node.get("displayName"),
            country_code=node.get("countryCode"),
        )


@dataclass(frozen=True)
class ShippingAddress:
    full_name: str | None = None
    line1: str | None = None
    line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country_code: str | None = None
    phone_number: str | None = None

    @classmethod
    def from_graphql(cls, node: dict | None) -> "ShippingAddress":
        node = node or {}
        return cls(
            full_name=node.get("fullName"),
            line1=node.get("line1"),
            line2=node.get("line2"),
            city=node.get("city"),
            state=node.get("state"),
            postal_code=node.get("postalCode"),
            country_code=node.get("countryCode"),
            phone_number=node.get("phoneNumber"),
        )


@dataclass(frozen=True)
class TrackingInfo:
    tracking_code: str | None = None
    courier: str | None = None

    @classmethod
    def from_graphql(cls, node: dict | None) -> "TrackingInfo | None":
        if not node:
            return None
        return cls(tracking_code=node.get("trackingCode"), courier=node.get("courier"))


@dataclass(frozen=True)
class LineItem:
    """
    One line item of a Whatnot order.

    Attributes:
        id: Whatnot item id
        sku: Variant SKU (None when the variant has no SKU)
        quantity: Units ordered
        unit_price: Price per unit
        is_pickup: Whether the item is fulfilled in person
        product_id: Whatnot product id, if any
        product_title: Product title, if any
    """

    id: str | None
    sku: str | None
    quantity: int
    unit_price: Money
    is_pickup: bool = False
    product_id: str | None = None
    product_title: str | None = None

    @classmethod
    def from_graphql(cls, node: dict) -> "LineItem":
        variant = node.get("variant") or {}
        product = node.get("product") or {}
        return cls(
            id=node.get("id"),
            sku=variant.get("sku") or None,
            quantity=int(node.get("quantity") or 0),
            unit_price=Money.from_graphql(node.get("price")),
            is_pickup=bool(node.get("isPickup")),
            product_id=product.get("id"),
            product_title=product.get("title"),
        )


@dataclass(frozen=True)
class MarketplaceOrder:
    """
    Domain model representing one Whatnot order.

    Attributes:
        id: Whatnot order id
        created_at: Creation timestamp as sent by Whatnot (ISO-8601)
        status: Whatnot status, see ``OrderStatus``
        customer: Buyer
        shipping_address: Destination address
        subtotal / shipping_price / taxation / total: Monetary totals
        sales_channel_reference: Livestream (session) reference
        tracking: Existing tracking info, if any
        items: Ordered line items
        cancelled_at: Cancellation timestamp, if cancelled
    """

    id: str
    created_at: str
    status: str | None
    customer: Customer
    shipping_address: ShippingAddress = field(default_factory=ShippingAddress)
    subtotal: Money = field(default_factory=Money.zero)
    shipping_price: Money = field(default_factory=Money.zero)
    taxation: Money = field(default_factory=Money.zero)
    total: Money = field(default_factory=Money.zero)
    sales_channel_type: str | None = None
    sales_channel_reference: str | None = None
    tracking: TrackingInfo | None = None
    items: tuple[LineItem, ...] = ()
    cancelled_at: str | None = None
    is_giveaway: bool = False
    items_has_next_page: bool = False

    @property
    def is_cancelled(self) -> bool:
        return bool(self.cancelled_at)

    @property
    def has_tracking(self) -> bool:
        return bool(self.tracking and self.tracking.tracking_code)

    @property
    def created_at_datetime(self) -> datetime:
        return parse_datetime(self.created_at)

    def with_items(self, items: list[LineItem]) -> "MarketplaceOrder":
        """Return a copy carrying the complete list of line items."""
        return replace(self, items=tuple(items), items_has_next_page=False)

    @classmethod
    def from_graphql(cls, node: dict[str, Any]) -> "MarketplaceOrder":
        """Build an order from a Whatnot ``orders.edges[].node`` object."""
        items_conn = node.get("items") or {}
        edges = items_conn.get("edges") or []
        page_info = items_conn.get("pageInfo") or {}
        sales_channel = node.get("salesChannel") or {}

        return cls(
            id=node["id"],
            created_at=node.get("createdAt"),
            status=node.get("status"),
            customer=Customer.from_graphql(node.get("customer")),
            shipping_address=ShippingAddress.from_graphql(node.get("shippingAddress")),
            subtotal=Money.from_graphql(node.get("subtotal")),
            shipping_price=Money.from_graphql(node.get("shippingPrice")),
            taxation=Money.from_graphql(node.get("taxation")),
            total=Money.from_graphql(node.get("total")),
            sales_channel_type=sales_channel.get("type"),
            sales_channel_reference=sales_channel.get("reference") or None,
            tracking=TrackingInfo.from_graphql(node.get("trackingInfo")),
            items=tuple(LineItem.from_graphql(edge["node"]) for edge in edges if edge.get("node")),
            cancelled_at=node.get("cancelledAt"),
            is_giveaway=bool(node.get("isGiveaway")),
            items_has_next_page=bool(page_info.get("hasNextPage")),
        )
