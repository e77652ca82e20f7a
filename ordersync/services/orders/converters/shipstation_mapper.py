"""
ShipStationOrderMapper - converts a consolidated Whatnot order group
into a ShipStation order.

The order key only depends on the session id and the customer, so a
retried batch upserts the same ShipStation order instead of creating
a duplicate.
"""

import logging

from ordersync.domain.models import (
    OrderGroup,
    ShippingAddress,
    ShippingAddressBlock,
    ShippingOrder,
    ShippingOrderItem,
)
from ordersync.utils.formatting import cents_to_dollars, format_usd

logger = logging.getLogger(__name__)

DEFAULT_ITEM_NAME = "Whatnot Item"


class ShipStationOrderMapper:
    """Maps OrderGroup → ShippingOrder."""

    @staticmethod
    def order_key(session_id: str, username: str) -> str:
        return f"wn-{session_id}-{username}_"

    @staticmethod
    def _address(address: ShippingAddress) -> ShippingAddressBlock:
        return ShippingAddressBlock(
            name=address.full_name,
            street1=address.line1,
            street2=address.line2,
            city=address.city,
            state=address.state,
            postal_code=address.postal_code,
            country=address.country_code,
            phone=address.phone_number,
            residential=True,
        )

    def map(self, group: OrderGroup, store_id: str | int | None = None) -> ShippingOrder:
        """
        Build the ShipStation order for one group.

        Args:
            group: Consolidated orders (same session, same customer)
            store_id: ShipStation store receiving the order

        Returns:
            ShippingOrder: Order ready for ``POST /orders/createorder``

        Raises:
            ValueError: If the group has no orders
        """
        if not group.orders:
            raise ValueError("No orders provided")

        first_order = group.first_order

        total_cents = 0
        shipping_cents = 0
        tax_cents = 0
        items: list[ShippingOrderItem] = []

        for order in group.orders:
            total_cents += order.total.cents
            shipping_cents += order.shipping_price.cents
            tax_cents += order.taxation.cents

            for item in order.items:
                items.append(
                    ShippingOrderItem(
                        sku=order.id,
                        line_item_key=f"{order.id}-{item.id}",
                        name=item.product_title or DEFAULT_ITEM_NAME,
                        quantity=item.quantity,
                        unit_price=cents_to_dollars(item.unit_price.cents),
                        product_id=item.product_id,
                    )
                )

        courier = first_order.tracking.courier if first_order.tracking else None
        address = self._address(first_order.shipping_address)

        return ShippingOrder(
            order_key=self.order_key(group.session_id, first_order.customer.username),
            order_date=first_order.created_at,
            customer_username=first_order.customer.username,
            bill_to=address,
            ship_to=address,
            items=items,
            amount_paid=cents_to_dollars(total_cents),
            tax_amount=cents_to_dollars(tax_cents),
            shipping_amount=cents_to_dollars(shipping_cents),
            session_id=group.session_id,
            shipping_label=format_usd(shipping_cents),
            internal_notes=",".join(group.order_ids),
            store_id=store_id,
            requested_shipping_service=courier.upper() if courier else None,
            merged=len(group.orders) > 1,
            marketplace_order_ids=group.order_ids,
        )
