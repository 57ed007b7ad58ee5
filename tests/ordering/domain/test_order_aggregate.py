"""Tests for the Order aggregate: placement, totals and fulfillment transitions."""

import pytest
from ordering.order.events import OrderPlaced, OrderStatusChanged
from ordering.order.order import Order, OrderStatus, PaymentStatus
from protean.exceptions import ValidationError

ADDRESS = {
    "name": "Ada Lovelace",
    "street": "12 Analytical Row",
    "city": "London",
    "postal_code": "N1 9GU",
    "country": "GB",
}

ITEMS = [
    {"product_id": "prod-1", "variant_id": None, "title": "Tee", "sku": "TEE", "quantity": 2, "unit_price": 10.00},
    {"product_id": "prod-2", "variant_id": "var-2", "title": "Mug", "sku": "MUG", "quantity": 3, "unit_price": 5.00},
]


def _place(**overrides):
    kwargs = {
        "order_number": "ORD-0000000001",
        "customer_id": "cust-001",
        "items_data": ITEMS,
        "shipping_address": ADDRESS,
        "billing_address": None,
        "shipping_method": "standard",
        "shipping_cost": 9.99,
        "tax_amount": 3.50,
        "payment_reference": "pi_fake_1",
    }
    kwargs.update(overrides)
    return Order.place(**kwargs)


class TestPlacement:
    def test_totals_are_computed_server_side(self):
        order = _place()
        assert order.subtotal == 35.00
        assert order.shipping_cost == 9.99
        assert order.tax_amount == 3.50
        assert order.total == 48.49

    def test_defaults_to_confirmed_and_paid(self):
        order = _place()
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.payment_status == PaymentStatus.PAID.value

    def test_items_are_snapshots(self):
        order = _place()
        assert len(order.items) == 2
        mug = next(item for item in order.items if item.product_id == "prod-2")
        assert mug.total_price == 15.00
        assert mug.sku == "MUG"

    def test_billing_defaults_to_shipping(self):
        order = _place()
        assert order.billing_address.street == ADDRESS["street"]

    def test_order_requires_items(self):
        with pytest.raises(ValidationError) as exc_info:
            _place(items_data=[])
        assert "items" in exc_info.value.messages

    def test_address_requires_postal_code(self):
        address = {key: value for key, value in ADDRESS.items() if key != "postal_code"}
        with pytest.raises(ValidationError):
            _place(shipping_address=address)

    def test_raises_order_placed(self):
        order = _place()
        event = order._events[-1]
        assert isinstance(event, OrderPlaced)
        assert event.item_count == 5
        assert event.payment_reference == "pi_fake_1"


class TestTotalsInvariant:
    def test_mismatched_total_is_rejected(self):
        order = _place()
        with pytest.raises(ValidationError) as exc_info:
            order.total = 1.00
        assert "total" in exc_info.value.messages


class TestStatusTransitions:
    @pytest.mark.parametrize(
        "path",
        [
            [OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.REFUNDED],
            [OrderStatus.CANCELLED, OrderStatus.REFUNDED],
            [OrderStatus.PROCESSING, OrderStatus.CANCELLED],
        ],
    )
    def test_valid_paths(self, path):
        order = _place()
        for status in path:
            order.update_status(status)
        assert order.status == path[-1].value

    def test_update_returns_previous_status(self):
        order = _place()
        assert order.update_status(OrderStatus.PROCESSING) == OrderStatus.CONFIRMED.value

    def test_invalid_transition(self):
        order = _place()
        with pytest.raises(ValidationError) as exc_info:
            order.update_status(OrderStatus.DELIVERED)
        assert "status" in exc_info.value.messages

    def test_shipped_cannot_be_cancelled(self):
        order = _place()
        order.update_status(OrderStatus.PROCESSING)
        order.update_status(OrderStatus.SHIPPED)
        with pytest.raises(ValidationError):
            order.update_status(OrderStatus.CANCELLED)

    def test_refund_marks_payment_refunded(self):
        order = _place()
        order.update_status(OrderStatus.CANCELLED)
        order.update_status(OrderStatus.REFUNDED)
        assert order.payment_status == PaymentStatus.REFUNDED.value

    def test_transition_raises_event(self):
        order = _place()
        order._events.clear()
        order.update_status(OrderStatus.PROCESSING)
        assert len(order._events) == 1
        event = order._events[0]
        assert isinstance(event, OrderStatusChanged)
        assert event.previous_status == "confirmed"
        assert event.new_status == "processing"
