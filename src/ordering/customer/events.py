"""Domain events for the Customer aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Customer")
class CustomerRegistered:
    """A customer record was created on first checkout with a new email."""

    __version__ = 1

    customer_id = Identifier(required=True)
    email = String(required=True)
    registered_at = DateTime(required=True)


@ordering.event(part_of="Customer")
class CustomerAddressSaved:
    __version__ = 1

    customer_id = Identifier(required=True)
    address_id = Identifier(required=True)
    tag = String(required=True)
    is_default = String(required=True)


@ordering.event(part_of="Customer")
class CustomerOrderRecorded:
    __version__ = 1

    customer_id = Identifier(required=True)
    order_count = Integer(required=True)
    total_spent = Float(required=True)
