"""Checkout aggregate — the persisted state of one checkout attempt.

Each attempt walks a fixed sequence of states, one step at a time:

    started → customer_resolved → payment_intent_created → payment_confirmed
            → order_created → cart_cleared → notification_enqueued → complete

Any non-terminal state may move to ``aborted``. Only a payment declined at
confirmation is recorded as reopenable, and the retry entry point may resume
it; every other abort is final. The attempt number feeds the gateway
idempotency key, so a repeated call for the same attempt never creates a
second intent.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from ordering.checkout.events import CheckoutAborted, CheckoutAdvanced, CheckoutStarted
from ordering.domain import ordering


class CheckoutState(Enum):
    STARTED = "started"
    CUSTOMER_RESOLVED = "customer_resolved"
    PAYMENT_INTENT_CREATED = "payment_intent_created"
    PAYMENT_CONFIRMED = "payment_confirmed"
    ORDER_CREATED = "order_created"
    CART_CLEARED = "cart_cleared"
    NOTIFICATION_ENQUEUED = "notification_enqueued"
    COMPLETE = "complete"
    ABORTED = "aborted"


_SEQUENCE = [
    CheckoutState.STARTED,
    CheckoutState.CUSTOMER_RESOLVED,
    CheckoutState.PAYMENT_INTENT_CREATED,
    CheckoutState.PAYMENT_CONFIRMED,
    CheckoutState.ORDER_CREATED,
    CheckoutState.CART_CLEARED,
    CheckoutState.NOTIFICATION_ENQUEUED,
    CheckoutState.COMPLETE,
]

TERMINAL_STATES = {CheckoutState.COMPLETE, CheckoutState.ABORTED}


def idempotency_key_for(cart_id, attempt: int) -> str:
    return f"checkout:{cart_id}:{attempt}"


@ordering.aggregate
class Checkout:
    cart_id = Identifier(required=True)
    customer_id = Identifier()
    attempt = Integer(required=True, min_value=1)
    idempotency_key = String(required=True, max_length=255)
    payment_intent_id = String(max_length=255)
    client_secret = String(max_length=255)
    payment_status = String(max_length=50)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")
    shipping_method = String(max_length=50)
    shipping_address = Text()  # JSON
    billing_address = Text()  # JSON
    contact_email = String(max_length=254)
    state = String(choices=CheckoutState, default=CheckoutState.STARTED.value)
    aborted_from = String(max_length=50)
    reopenable = Boolean(default=False)
    failure_reason = Text()
    recovery_action = String(max_length=50)
    order_id = Identifier()
    order_number = String(max_length=50)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def start(
        cls,
        cart_id,
        attempt,
        amount,
        currency,
        shipping_method,
        shipping_address: dict,
        billing_address: dict,
        contact_email,
    ):
        now = datetime.now(UTC)
        checkout = cls(
            cart_id=cart_id,
            attempt=attempt,
            idempotency_key=idempotency_key_for(cart_id, attempt),
            amount=round(amount, 2),
            currency=currency.upper(),
            shipping_method=shipping_method,
            shipping_address=json.dumps(shipping_address),
            billing_address=json.dumps(billing_address),
            contact_email=contact_email,
            state=CheckoutState.STARTED.value,
            created_at=now,
            updated_at=now,
        )
        checkout.raise_(
            CheckoutStarted(
                checkout_id=str(checkout.id),
                cart_id=str(cart_id),
                attempt=attempt,
                amount=checkout.amount,
                currency=checkout.currency,
                started_at=now,
            )
        )
        return checkout

    # -------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------
    @property
    def current_state(self) -> CheckoutState:
        return CheckoutState(self.state)

    @property
    def is_open(self) -> bool:
        return self.current_state not in TERMINAL_STATES

    def has_reached(self, state: CheckoutState) -> bool:
        """True once the attempt has advanced to ``state`` or beyond."""
        current = self.current_state
        if current == CheckoutState.ABORTED:
            return False
        return _SEQUENCE.index(current) >= _SEQUENCE.index(state)

    @property
    def can_be_reopened(self) -> bool:
        return self.current_state == CheckoutState.ABORTED and bool(self.reopenable)

    def advance_to(self, target: CheckoutState) -> None:
        current = self.current_state
        if current in TERMINAL_STATES or target == CheckoutState.ABORTED:
            raise ValidationError({"state": [f"Cannot advance checkout from {current.value} to {target.value}"]})

        if _SEQUENCE.index(target) != _SEQUENCE.index(current) + 1:
            raise ValidationError({"state": [f"Cannot advance checkout from {current.value} to {target.value}"]})

        now = datetime.now(UTC)
        self.state = target.value
        self.updated_at = now
        self.raise_(
            CheckoutAdvanced(
                checkout_id=str(self.id),
                previous_state=current.value,
                new_state=target.value,
                changed_at=now,
            )
        )

    def abort(self, reason: str, recovery_action: str | None = None) -> None:
        current = self.current_state
        if current in TERMINAL_STATES:
            raise ValidationError({"state": [f"Cannot abort a checkout that is {current.value}"]})

        now = datetime.now(UTC)
        self.state = CheckoutState.ABORTED.value
        self.aborted_from = current.value
        self.failure_reason = reason
        self.recovery_action = recovery_action
        self.updated_at = now
        self.raise_(
            CheckoutAborted(
                checkout_id=str(self.id),
                cart_id=str(self.cart_id),
                aborted_from=current.value,
                reason=reason,
                recovery_action=recovery_action,
                aborted_at=now,
            )
        )

    def decline(self, reason: str, recovery_action: str | None = None) -> None:
        """Abort on a gateway decline. Only a decline at payment confirmation can be retried."""
        self.abort(reason, recovery_action)
        self.reopenable = self.aborted_from == CheckoutState.PAYMENT_INTENT_CREATED.value

    def reopen_for_retry(self) -> None:
        if not self.can_be_reopened:
            raise ValidationError({"state": [f"Checkout in state {self.state} cannot be retried"]})

        now = datetime.now(UTC)
        self.state = CheckoutState.PAYMENT_INTENT_CREATED.value
        self.aborted_from = None
        self.reopenable = False
        self.failure_reason = None
        self.recovery_action = None
        self.updated_at = now
        self.raise_(
            CheckoutAdvanced(
                checkout_id=str(self.id),
                previous_state=CheckoutState.ABORTED.value,
                new_state=self.state,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Step results
    # -------------------------------------------------------------------
    def resolve_customer(self, customer_id) -> None:
        self.customer_id = customer_id
        self.advance_to(CheckoutState.CUSTOMER_RESOLVED)

    def record_payment_intent(self, intent_id: str, client_secret: str, status: str) -> None:
        self.payment_intent_id = intent_id
        self.client_secret = client_secret
        self.payment_status = status
        self.advance_to(CheckoutState.PAYMENT_INTENT_CREATED)

    def confirm_payment(self, status: str) -> None:
        self.payment_status = status
        self.advance_to(CheckoutState.PAYMENT_CONFIRMED)

    def record_order(self, order_id, order_number: str) -> None:
        self.order_id = order_id
        self.order_number = order_number
        self.advance_to(CheckoutState.ORDER_CREATED)

    def mark_complete(self) -> None:
        self.advance_to(CheckoutState.NOTIFICATION_ENQUEUED)
        self.advance_to(CheckoutState.COMPLETE)

    def addresses(self) -> tuple[dict, dict]:
        shipping = json.loads(self.shipping_address) if self.shipping_address else {}
        billing = json.loads(self.billing_address) if self.billing_address else shipping
        return shipping, billing
