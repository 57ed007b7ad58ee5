"""Stripe payment gateway adapter.

Uses the stripe-python SDK with a per-call API key so several adapters (test
and live keys) can coexist in one process. Stripe works in minor currency
units; the port works in major units.
"""

import stripe
import structlog

from payments.gateway.port import (
    GatewayError,
    GatewayUnavailableError,
    IntentNotFoundError,
    IntentStatus,
    PaymentGateway,
    PaymentIntentResult,
)

logger = structlog.get_logger(__name__)

ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "bif",
        "clp",
        "djf",
        "gnf",
        "jpy",
        "kmf",
        "krw",
        "mga",
        "pyg",
        "rwf",
        "ugx",
        "vnd",
        "vuv",
        "xaf",
        "xof",
        "xpf",
    }
)

_PENDING_STATUSES = {"requires_confirmation", "requires_action", "processing", "requires_capture"}


def to_minor_units(amount: float, currency: str) -> int:
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return int(round(amount))
    return int(round(amount * 100))


def from_minor_units(amount: int, currency: str) -> float:
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return float(amount)
    return round(amount / 100, 2)


def normalize_status(stripe_status: str, last_payment_error) -> str:
    """Collapse Stripe's intent lifecycle onto requires_confirmation/succeeded/failed."""
    if stripe_status == "succeeded":
        return IntentStatus.SUCCEEDED.value
    if stripe_status == "canceled":
        return IntentStatus.FAILED.value
    if stripe_status == "requires_payment_method":
        # Stripe returns here after a failed attempt; a fresh intent has no error yet
        return IntentStatus.FAILED.value if last_payment_error else IntentStatus.REQUIRES_CONFIRMATION.value
    if stripe_status in _PENDING_STATUSES:
        return IntentStatus.REQUIRES_CONFIRMATION.value
    logger.warning("Unknown Stripe intent status, treating as pending", status=stripe_status)
    return IntentStatus.REQUIRES_CONFIRMATION.value


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    def __init__(self, api_key: str, webhook_secret: str) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def _to_result(self, intent) -> PaymentIntentResult:
        currency = intent["currency"]
        error = intent.get("last_payment_error")
        status = normalize_status(intent["status"], error)
        failure_code = None
        failure_message = None
        if status == IntentStatus.FAILED.value:
            if error:
                failure_code = error.get("decline_code") or error.get("code")
                failure_message = error.get("message")
            else:
                failure_code = "canceled"
                failure_message = intent.get("cancellation_reason") or "Payment was canceled"
        return PaymentIntentResult(
            intent_id=intent["id"],
            client_secret=intent.get("client_secret"),
            status=status,
            amount=from_minor_units(intent["amount"], currency),
            currency=currency.upper(),
            failure_code=failure_code,
            failure_message=failure_message,
        )

    def _translate(self, exc: stripe.StripeError, intent_id: str | None = None) -> GatewayError:
        message = exc.user_message or str(exc)
        code = getattr(exc, "code", None)
        if isinstance(exc, stripe.InvalidRequestError) and code == "resource_missing":
            return IntentNotFoundError(message, code=code)
        if isinstance(exc, stripe.APIConnectionError | stripe.RateLimitError):
            return GatewayUnavailableError(message, code=code or "api_connection_error")
        logger.warning("Stripe request failed", intent_id=intent_id, code=code, error=message)
        return GatewayError(message, code=code)

    def create_payment_intent(
        self,
        amount: float,
        currency: str,
        idempotency_key: str,
        metadata: dict | None = None,
    ) -> PaymentIntentResult:
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount, currency),
                currency=currency.lower(),
                metadata=metadata or {},
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key,
                api_key=self.api_key,
            )
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc

        logger.info("Created Stripe payment intent", intent_id=intent["id"], idempotency_key=idempotency_key)
        return self._to_result(intent)

    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntentResult:
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            raise self._translate(exc, intent_id) from exc
        return self._to_result(intent)

    def confirm_payment_intent(
        self,
        intent_id: str,
        payment_method_id: str | None = None,
    ) -> PaymentIntentResult:
        params = {"payment_method": payment_method_id} if payment_method_id else {}
        try:
            intent = stripe.PaymentIntent.confirm(intent_id, api_key=self.api_key, **params)
        except stripe.CardError as exc:
            # Declines come back as exceptions; the intent itself records the failure
            logger.info("Stripe declined confirmation", intent_id=intent_id, code=exc.code)
            return self.retrieve_payment_intent(intent_id)
        except stripe.StripeError as exc:
            raise self._translate(exc, intent_id) from exc
        return self._to_result(intent)

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError):
            return False
        return True
