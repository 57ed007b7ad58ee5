"""Order placement — command and handler.

Placing is idempotent per payment reference: if an order already exists for
the intent, its id is returned and nothing new is written.
"""

import json

import structlog
from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.config import setting
from ordering.domain import ordering
from ordering.order.numbering import order_number_for
from ordering.order.order import Order

logger = structlog.get_logger(__name__)


def _loads(value):
    return json.loads(value) if isinstance(value, str) else value


@ordering.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    cart_id = Identifier()
    items = Text(required=True)  # JSON: list of item snapshots
    shipping_address = Text(required=True)  # JSON: address dict
    billing_address = Text()  # JSON: address dict, defaults to shipping
    shipping_method = String(required=True, max_length=50)
    shipping_cost = Float(default=0.0)
    tax_amount = Float(default=0.0)
    currency = String(max_length=3, default="USD")
    payment_reference = String(required=True, max_length=255)


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        repo = current_domain.repository_for(Order)
        existing = repo.find_by_payment_reference(command.payment_reference)
        if existing is not None:
            logger.info(
                "Order already exists for payment, returning it",
                order_id=str(existing.id),
                payment_reference=command.payment_reference,
            )
            return str(existing.id)

        order = Order.place(
            order_number=order_number_for(command.payment_reference, setting("ORDER_NUMBER_PREFIX", "ORD")),
            customer_id=command.customer_id,
            cart_id=command.cart_id,
            items_data=_loads(command.items),
            shipping_address=_loads(command.shipping_address),
            billing_address=_loads(command.billing_address) if command.billing_address else None,
            shipping_method=command.shipping_method,
            shipping_cost=command.shipping_cost or 0.0,
            tax_amount=command.tax_amount or 0.0,
            currency=command.currency or "USD",
            payment_reference=command.payment_reference,
        )
        repo.add(order)

        logger.info(
            "Placed order",
            order_id=str(order.id),
            order_number=order.order_number,
            total=order.total,
            payment_reference=command.payment_reference,
        )
        return str(order.id)
