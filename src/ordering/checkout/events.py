"""Domain events for the Checkout aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Checkout")
class CheckoutStarted:
    __version__ = 1

    checkout_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    attempt = Integer(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    started_at = DateTime(required=True)


@ordering.event(part_of="Checkout")
class CheckoutAdvanced:
    __version__ = 1

    checkout_id = Identifier(required=True)
    previous_state = String(required=True)
    new_state = String(required=True)
    changed_at = DateTime(required=True)


@ordering.event(part_of="Checkout")
class CheckoutAborted:
    """A checkout attempt stopped before committing an order."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    aborted_from = String(required=True)
    reason = String(required=True)
    recovery_action = String()
    aborted_at = DateTime(required=True)
