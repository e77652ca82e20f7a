"""Tests unitarios para la validación de órdenes antes de crearlas en ShipStation."""

from ordersync.services.orders.validators import OrderValidator
from tests.fakes import make_item_node, make_order


class TestValidateOrder:
    """Tests para OrderValidator.validate_order."""

    def test_processing_order_with_sku_is_valid(self):
        """Orden PROCESSING, sin tracking, no cancelada y con SKU es válida."""
        assert OrderValidator().validate_order(make_order()) == []

    def test_delivered_order_is_rejected_for_status(self):
        """Una orden DELIVERED se rechaza por estado."""
        errors = OrderValidator().validate_order(make_order(status="DELIVERED"))

        assert errors == ["Invalid order status: DELIVERED (expected PROCESSING)"]

    def test_missing_sku_and_pickup_item_give_two_reasons(self):
        """Un item sin SKU y otro de retiro producen dos razones."""
        order = make_order(
            items=[
                make_item_node("i1", sku=None),
                make_item_node("i2", is_pickup=True),
            ]
        )

        errors = OrderValidator().validate_order(order)

        assert errors == [
            "Missing SKU for item i1",
            "Order contains pickup items which should be fulfilled in person",
        ]

    def test_all_reasons_are_collected(self):
        """Cancelada, con tracking y en estado incorrecto: todas las razones."""
        order = make_order(
            status="SHIPPED",
            cancelled_at="2024-03-16T00:00:00Z",
            tracking={"trackingCode": "9400", "courier": "usps"},
        )

        errors = OrderValidator().validate_order(order)

        assert errors == [
            "Order is cancelled",
            "Order already has tracking code",
            "Invalid order status: SHIPPED (expected PROCESSING)",
        ]

    def test_order_without_items_stops_after_items_check(self):
        """Una orden sin items devuelve una sola razón de items."""
        errors = OrderValidator().validate_order(make_order(items=[]))

        assert errors == ["Order has no items"]

    def test_empty_tracking_code_is_not_tracking(self):
        """Un trackingInfo sin código no cuenta como tracking existente."""
        order = make_order(tracking={"trackingCode": None, "courier": None})

        assert OrderValidator().validate_order(order) == []


class TestValidate:
    """Tests para OrderValidator.validate."""

    def test_every_order_lands_in_one_bucket(self):
        """valid + invalid siempre suma la cantidad de órdenes de entrada."""
        orders = [
            make_order(),
            make_order(status="DELIVERED"),
            make_order(items=[]),
            make_order(),
        ]

        result = OrderValidator().validate(orders)

        assert len(result.valid) + len(result.invalid) == len(orders)
        assert result.total == 4
        assert [invalid.order.id for invalid in result.invalid] == [orders[1].id, orders[2].id]

    def test_empty_input(self):
        """Sin órdenes el resultado está vacío."""
        result = OrderValidator().validate([])

        assert result.valid == []
        assert result.invalid == []
