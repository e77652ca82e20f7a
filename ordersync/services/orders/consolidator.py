"""
OrderConsolidator service for grouping Whatnot orders into shipments.

Orders from the same livestream and the same customer are shipped
together. The grouping is deterministic so that a retried batch
produces the same ShipStation order keys.
"""

import logging
from typing import Iterable

from ordersync.domain.models import MarketplaceOrder, OrderGroup
from ordersync.utils.formatting import format_stream_id

logger = logging.getLogger(__name__)


class OrderConsolidator:
    """
    Partitions orders by (session id, customer username).

    The session id of a livestream comes from the creation time of its
    earliest non-cancelled order. Orders without a livestream reference
    form their own session from their own creation time.
    """

    def __init__(self, stream_timezone: str | None = None):
        """
        Args:
            stream_timezone: Timezone used to render session ids
        """
        self.stream_timezone = stream_timezone

    def _session_ids(self, orders: list[MarketplaceOrder]) -> dict[str, str]:
        earliest: dict[str, MarketplaceOrder] = {}
        for order in orders:
            reference = order.sales_channel_reference
            if not reference:
                continue
            current = earliest.get(reference)
            if current is None or order.created_at_datetime < current.created_at_datetime:
                earliest[reference] = order

        return {
            reference: format_stream_id(order.created_at, self.stream_timezone)
            for reference, order in earliest.items()
        }

    def session_id_for(self, order: MarketplaceOrder, session_ids: dict[str, str]) -> str:
        reference = order.sales_channel_reference
        if reference and reference in session_ids:
            return session_ids[reference]
        return format_stream_id(order.created_at, self.stream_timezone)

    def group(self, orders: Iterable[MarketplaceOrder]) -> list[OrderGroup]:
        """
        Group non-cancelled orders.

        Groups keep the order of first appearance of their key; orders
        keep their input order inside a group.

        Args:
            orders: Orders to consolidate

        Returns:
            list[OrderGroup]: Consolidated groups
        """
        active = [order for order in orders if not order.is_cancelled]
        session_ids = self._session_ids(active)

        groups: dict[tuple[str, str], OrderGroup] = {}
        for order in active:
            session_id = self.session_id_for(order, session_ids)
            key = (session_id, order.customer.username)
            group = groups.get(key)
            if group is None:
                group = groups[key] = OrderGroup(session_id=session_id)
            group.orders.append(order)

        logger.info(f"Grouped {len(active)} orders into {len(groups)} combined orders")
        return list(groups.values())
