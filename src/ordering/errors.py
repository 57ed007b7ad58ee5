"""Error taxonomy for the storefront core.

Validation and availability errors are Protean ``ValidationError`` subclasses so
they surface as 400 responses with field-keyed messages. Gateway errors carry
the gateway's own message plus recovery actions. Integrity errors are fatal to
the operation and reported to callers only as a generic message.
"""

from protean.exceptions import ValidationError

GENERIC_RETRY_MESSAGE = "Something went wrong while processing your request. Please try again."


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------
class AvailabilityError(ValidationError):
    """The requested product cannot be ordered right now."""


class ProductUnavailableError(AvailabilityError):
    def __init__(self, product_id, variant_id=None, reason="Product is not available"):
        self.product_id = product_id
        self.variant_id = variant_id
        key = "variant_id" if variant_id else "product_id"
        super().__init__({key: [reason]})


class InsufficientInventoryError(AvailabilityError):
    def __init__(self, product_id, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__({"quantity": [f"Only {available} items available in stock (requested {requested})"]})


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------
class PaymentGatewayError(Exception):
    """The gateway failed, timed out, or did not report success.

    ``message`` is the gateway's own text, preserved verbatim.
    """

    status_code = 503

    def __init__(self, message, code=None, recovery_actions=("retry",)):
        super().__init__(message)
        self.message = message
        self.code = code
        self.recovery_actions = tuple(recovery_actions)

    @property
    def recovery_action(self):
        return self.recovery_actions[0] if self.recovery_actions else None

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "recovery_action": self.recovery_action,
            "recovery_actions": list(self.recovery_actions),
        }


class PaymentDeclinedError(PaymentGatewayError):
    status_code = 402


class PaymentPendingError(PaymentGatewayError):
    """The intent exists but has not reached a terminal status yet."""


# ---------------------------------------------------------------------------
# Checkout outcome
# ---------------------------------------------------------------------------
class CartAlreadyConvertedError(Exception):
    def __init__(self, cart_id):
        super().__init__("This cart was already checked out")
        self.cart_id = cart_id


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------
class IntegrityError(Exception):
    """Data is in a state that must never happen. Never auto-corrected."""

    def __init__(self, detail: str, **context):
        super().__init__(detail)
        self.detail = detail
        self.context = context


class CartIntegrityError(IntegrityError):
    pass


class CheckoutIntegrityError(IntegrityError):
    pass
