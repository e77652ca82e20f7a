"""
OrderValidator service for screening Whatnot orders before shipment.

This service follows SRP by focusing only on deciding whether an order
can be shipped through ShipStation.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable

from ordersync.domain.models import MarketplaceOrder, OrderStatus

logger = logging.getLogger(__name__)


@dataclass
class InvalidOrder:
    order: MarketplaceOrder
    errors: list[str]


@dataclass
class ValidationResult:
    valid: list[MarketplaceOrder] = field(default_factory=list)
    invalid: list[InvalidOrder] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.valid) + len(self.invalid)


class OrderValidator:
    """
    Rejects orders that must not become ShipStation orders.

    Responsibilities:
    - Cancelled orders
    - Orders that already carry a tracking code
    - Orders not in the eligible status
    - Orders without items, with pickup items or with items missing a SKU
    """

    def __init__(self, eligible_status: str = OrderStatus.ELIGIBLE):
        self.eligible_status = eligible_status

    def validate_order(self, order: MarketplaceOrder) -> list[str]:
        """
        Collect every reason an order cannot be shipped.

        Args:
            order: Whatnot order

        Returns:
            list[str]: Reasons, empty when the order is valid
        """
        errors: list[str] = []

        if order.is_cancelled:
            errors.append("Order is cancelled")

        if order.has_tracking:
            errors.append("Order already has tracking code")

        if order.status != self.eligible_status:
            errors.append(f"Invalid order status: {order.status or 'unknown'} (expected {self.eligible_status})")

        if not order.items:
            errors.append("Order has no items")
            return errors

        for item in order.items:
            if item.is_pickup:
                errors.append("Order contains pickup items which should be fulfilled in person")
                continue

            if not item.sku:
                errors.append(f"Missing SKU for item {item.id or 'unknown'}")

        return errors

    def validate(self, orders: Iterable[MarketplaceOrder]) -> ValidationResult:
        """
        Split orders into valid and invalid.

        Returns:
            ValidationResult: Every input order lands in exactly one bucket
        """
        result = ValidationResult()

        for order in orders:
            errors = self.validate_order(order)
            if errors:
                result.invalid.append(InvalidOrder(order=order, errors=errors))
                logger.debug(f"Order {order.id} rejected: {', '.join(errors)}")
            else:
                result.valid.append(order)

        logger.info(
            f"Validation complete: {len(result.valid)} valid orders, {len(result.invalid)} invalid orders"
        )
        return result
