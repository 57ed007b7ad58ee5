"""Order status updates from staff tooling.

A successful transition enqueues an order update email to the customer.
The email is best-effort: a queue failure is logged and never undoes the
status change.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from notifications.helpers import queue_order_update
from ordering.customer.customer import Customer
from ordering.domain import ordering
from ordering.order.notices import order_update_payload
from ordering.order.order import Order, OrderStatus

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, choices=OrderStatus)
    message = Text()
    tracking_number = String(max_length=100)
    estimated_delivery = String(max_length=50)


@ordering.command_handler(part_of=Order)
class UpdateOrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_order_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        previous = order.update_status(OrderStatus(command.status))
        repo.add(order)

        logger.info(
            "Order status updated",
            order_id=str(order.id),
            order_number=order.order_number,
            previous_status=previous,
            new_status=order.status,
        )

        try:
            customer = current_domain.repository_for(Customer).get(order.customer_id)
            queue_order_update(
                order_update_payload(
                    order,
                    customer,
                    message=command.message,
                    tracking_number=command.tracking_number,
                    estimated_delivery=command.estimated_delivery,
                )
            )
        except Exception as exc:
            logger.warning(
                "Could not queue order update email",
                order_id=str(order.id),
                error=str(exc),
            )

        return order.to_summary()
