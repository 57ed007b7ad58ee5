"""Order number generation.

Order numbers are derived from the payment intent that paid for the order,
so a second attempt to create an order for the same intent yields the same
number and collides on the unique constraint instead of creating a duplicate.
"""

import hashlib

DEFAULT_PREFIX = "ORD"


def order_number_for(payment_reference: str, prefix: str = DEFAULT_PREFIX) -> str:
    if not payment_reference:
        raise ValueError("An order number needs the payment reference it was paid with")
    digest = hashlib.sha256(payment_reference.encode("utf-8")).hexdigest()
    return f"{prefix}-{digest[:10].upper()}"
