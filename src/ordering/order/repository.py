"""Repository for the Order aggregate."""

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.repository(part_of=Order)
class OrderRepository:
    def find_by_number(self, order_number: str) -> Order | None:
        orders = self._dao.query.filter(order_number=order_number).all().items
        return orders[0] if orders else None

    def find_by_payment_reference(self, payment_reference: str) -> Order | None:
        orders = self._dao.query.filter(payment_reference=payment_reference).all().items
        return orders[0] if orders else None

    def find_for_customer(self, customer_id: str) -> list[Order]:
        return self._dao.query.filter(customer_id=customer_id).order_by("-created_at").all().items
