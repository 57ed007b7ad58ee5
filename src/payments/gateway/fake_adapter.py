"""Configurable fake payment gateway for development and testing.

Behaves like Stripe's test mode for the calls the checkout saga makes:
intents are created in ``requires_confirmation``, a repeated idempotency key
returns the original intent, and confirmation settles the intent according
to the configured outcome. Every call is recorded in ``calls``.
"""

import threading
import time
from uuid import uuid4

from payments.gateway.port import (
    GatewayUnavailableError,
    IntentNotFoundError,
    IntentStatus,
    PaymentGateway,
    PaymentIntentResult,
)


class FakeGateway(PaymentGateway):
    """In-memory payment gateway."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.intents: dict[str, PaymentIntentResult] = {}
        self._by_idempotency_key: dict[str, str] = {}
        self.calls: list[dict] = []
        self.should_succeed: bool = True
        self.failure_code: str = "card_declined"
        self.failure_reason: str = "Your card was declined."
        self.latency: float = 0.0
        self._outages: int = 0

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Your card was declined.",
        failure_code: str = "card_declined",
    ) -> None:
        """Decide how the next confirmations settle."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.failure_code = failure_code

    def fail_next(self, times: int = 1) -> None:
        """Make the next ``times`` calls raise ``GatewayUnavailableError``."""
        self._outages = times

    def reset(self) -> None:
        with self._lock:
            self.intents.clear()
            self._by_idempotency_key.clear()
            self.calls.clear()
        self.configure(should_succeed=True)
        self.latency = 0.0
        self._outages = 0

    def _enter(self, method: str, **params) -> None:
        self.calls.append({"method": method, **params})
        if self.latency:
            time.sleep(self.latency)
        if self._outages:
            self._outages -= 1
            raise GatewayUnavailableError("Gateway connection timed out", code="api_connection_error")

    def _settle(self, intent: PaymentIntentResult) -> PaymentIntentResult:
        if self.should_succeed:
            settled = PaymentIntentResult(
                intent_id=intent.intent_id,
                client_secret=intent.client_secret,
                status=IntentStatus.SUCCEEDED.value,
                amount=intent.amount,
                currency=intent.currency,
            )
        else:
            settled = PaymentIntentResult(
                intent_id=intent.intent_id,
                client_secret=intent.client_secret,
                status=IntentStatus.FAILED.value,
                amount=intent.amount,
                currency=intent.currency,
                failure_code=self.failure_code,
                failure_message=self.failure_reason,
            )
        self.intents[intent.intent_id] = settled
        return settled

    def create_payment_intent(
        self,
        amount: float,
        currency: str,
        idempotency_key: str,
        metadata: dict | None = None,
    ) -> PaymentIntentResult:
        self._enter(
            "create_payment_intent",
            amount=amount,
            currency=currency,
            idempotency_key=idempotency_key,
            metadata=metadata or {},
        )
        with self._lock:
            existing_id = self._by_idempotency_key.get(idempotency_key)
            if existing_id is not None:
                return self.intents[existing_id]

            intent_id = f"pi_fake_{uuid4().hex[:16]}"
            intent = PaymentIntentResult(
                intent_id=intent_id,
                client_secret=f"{intent_id}_secret_{uuid4().hex[:12]}",
                status=IntentStatus.REQUIRES_CONFIRMATION.value,
                amount=round(amount, 2),
                currency=currency.upper(),
            )
            self.intents[intent_id] = intent
            self._by_idempotency_key[idempotency_key] = intent_id
            return intent

    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntentResult:
        self._enter("retrieve_payment_intent", intent_id=intent_id)
        try:
            return self.intents[intent_id]
        except KeyError:
            raise IntentNotFoundError(f"No such payment_intent: '{intent_id}'", code="resource_missing") from None

    def confirm_payment_intent(
        self,
        intent_id: str,
        payment_method_id: str | None = None,
    ) -> PaymentIntentResult:
        self._enter("confirm_payment_intent", intent_id=intent_id, payment_method_id=payment_method_id)
        with self._lock:
            intent = self.intents.get(intent_id)
            if intent is None:
                raise IntentNotFoundError(f"No such payment_intent: '{intent_id}'", code="resource_missing")
            if intent.succeeded:
                return intent
            return self._settle(intent)

    def simulate_client_confirmation(self, intent_id: str) -> PaymentIntentResult:
        """Stand-in for the browser confirming the intent directly at the gateway.

        Not recorded in ``calls``: the core never makes this call itself.
        """
        with self._lock:
            return self._settle(self.intents[intent_id])

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:  # noqa: ARG002
        return signature == "test-signature"
