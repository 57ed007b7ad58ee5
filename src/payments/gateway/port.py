"""Payment gateway port (abstract interface).

The checkout saga talks to the payment provider only through this contract.
Adapters translate the provider's own statuses into the three the core
understands and never expose provider objects.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class IntentStatus(Enum):
    REQUIRES_CONFIRMATION = "requires_confirmation"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class PaymentIntentResult:
    """Snapshot of a payment intent as last reported by the gateway."""

    intent_id: str
    client_secret: str | None
    status: str
    amount: float
    currency: str
    failure_code: str | None = None
    failure_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == IntentStatus.SUCCEEDED.value

    @property
    def failed(self) -> bool:
        return self.status == IntentStatus.FAILED.value


class GatewayError(Exception):
    """Raised by adapters when the gateway cannot be reached or rejects a request."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class GatewayUnavailableError(GatewayError):
    pass


class IntentNotFoundError(GatewayError):
    pass


class PaymentGateway(ABC):
    """Abstract payment gateway interface. Amounts are in major currency units."""

    @abstractmethod
    def create_payment_intent(
        self,
        amount: float,
        currency: str,
        idempotency_key: str,
        metadata: dict | None = None,
    ) -> PaymentIntentResult:
        """Create (or, for a repeated idempotency key, return) a payment intent."""
        ...

    @abstractmethod
    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntentResult: ...

    @abstractmethod
    def confirm_payment_intent(
        self,
        intent_id: str,
        payment_method_id: str | None = None,
    ) -> PaymentIntentResult:
        """Re-drive confirmation of an existing intent, optionally with a new payment method."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: str, signature: str) -> bool: ...
