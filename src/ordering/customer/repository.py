"""Repository for the Customer aggregate."""

import threading

import structlog

from ordering.customer.customer import Customer, normalize_email
from ordering.domain import ordering

logger = structlog.get_logger(__name__)

# Find-or-create must not race within the process; the unique email covers the rest
_registration_lock = threading.Lock()


@ordering.repository(part_of=Customer)
class CustomerRepository:
    def find_by_email(self, email: str) -> Customer | None:
        customers = self._dao.query.filter(email=normalize_email(email)).all().items
        return customers[0] if customers else None

    def find_or_register(self, email: str, first_name=None, last_name=None, phone=None) -> tuple[Customer, bool]:
        """Return the customer for ``email``, creating it on first sight.

        Returns ``(customer, created)``. Re-invoking with the same email never
        creates a second record.
        """
        with _registration_lock:
            customer = self.find_by_email(email)
            if customer is not None:
                return customer, False

            customer = Customer.register(email, first_name=first_name, last_name=last_name, phone=phone)
            self.add(customer)
            logger.info("Registered new customer", customer_id=str(customer.id), email=customer.email)
            return customer, True
