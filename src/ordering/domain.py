"""Ordering bounded context — carts, customers, orders and checkout.

Carts are mutated through commands; checkout is driven by the
``CheckoutSaga`` orchestrator, which coordinates the cart, the payment
gateway, the order store and the notification queue.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
