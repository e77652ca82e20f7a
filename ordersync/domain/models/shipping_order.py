"""
ShipStation order representation.

Built from one OrderGroup by the mapper and serialized with ``to_dict``
into the ``POST /orders/createorder`` payload.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any


def _money(value: Decimal) -> float:
    return float(value)


def _store_id(value: str | int | None) -> str | int | None:
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


@dataclass(frozen=True)
class ShippingAddressBlock:
    name: str | None
    street1: str | None
    street2: str | None
    city: str | None
    state: str | None
    postal_code: str | None
    country: str | None
    phone: str | None
    residential: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "street1": self.street1,
            "street2": self.street2,
            "city": self.city,
            "state": self.state,
            "postalCode": self.postal_code,
            "country": self.country,
            "phone": self.phone,
            "residential": self.residential,
        }


@dataclass(frozen=True)
class ShippingOrderItem:
    """
    One ShipStation line item.

    The SKU carries the Whatnot order id so shipments can be traced
    back to marketplace orders when pushing tracking.
    """

    sku: str
    line_item_key: str
    name: str
    quantity: int
    unit_price: Decimal
    product_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sku": self.sku,
            "lineItemKey": self.line_item_key,
            "name": self.name,
            "quantity": self.quantity,
            "unitPrice": _money(self.unit_price),
            "productId": self.product_id,
        }


@dataclass(frozen=True)
class ShippingOrder:
    """
    Domain model for a ShipStation order created from a consolidated group.

    Attributes:
        order_key: Deterministic key (``wn-{session}-{username}_``); also the order number
        order_date: Creation time of the first Whatnot order
        customer_username: Whatnot username of the buyer
        bill_to / ship_to: Address of the first order
        items: One item per Whatnot line item
        amount_paid / tax_amount / shipping_amount: Totals in dollars
        requested_shipping_service: Courier already chosen on Whatnot, upper-cased
        internal_notes: Comma-joined Whatnot order ids
        store_id: ShipStation store
        session_id: Stream id (``customField1``)
        shipping_label: Formatted shipping total (``customField2``)
        merged: Whether several Whatnot orders were combined
    """

    order_key: str
    order_date: str
    customer_username: str
    bill_to: ShippingAddressBlock
    ship_to: ShippingAddressBlock
    items: list[ShippingOrderItem]
    amount_paid: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    session_id: str
    shipping_label: str
    internal_notes: str
    store_id: str | int | None = None
    requested_shipping_service: str | None = None
    merged: bool = False
    order_status: str = "awaiting_shipment"
    payment_method: str = "Other"
    gift: bool = False
    source: str = "Whatnot"
    marketplace_order_ids: list[str] = field(default_factory=list)

    @property
    def order_number(self) -> str:
        return self.order_key

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ShipStation create-order payload."""
        return {
            "orderNumber": self.order_number,
            "orderKey": self.order_key,
            "orderDate": self.order_date,
            "orderStatus": self.order_status,
            "customerUsername": self.customer_username,
            "billTo": self.bill_to.to_dict(),
            "shipTo": self.ship_to.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "amountPaid": _money(self.amount_paid),
            "taxAmount": _money(self.tax_amount),
            "shippingAmount": _money(self.shipping_amount),
            "gift": self.gift,
            "paymentMethod": self.payment_method,
            "requestedShippingService": self.requested_shipping_service,
            "internalNotes": self.internal_notes,
            "advancedOptions": {
                "storeId": _store_id(self.store_id),
                "customField1": self.session_id,
                "customField2": self.shipping_label,
                "source": self.source,
                "mergedOrSplit": self.merged,
            },
        }
