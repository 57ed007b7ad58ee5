"""Checkout Saga — drives a cart through payment to a committed order.

The saga keeps four things consistent under partial failure: the cart, the
customer, the remote payment gateway, and the order record. Each attempt is
persisted as a ``Checkout`` aggregate so that every step can be resumed or
compensated explicitly.

Flow:
    begin()
        1. Resolve (find or register) the customer by email
        2. Price the cart server-side and create a payment intent
    complete() / retry()
        3. Confirm the payment status with the gateway
        4. Convert the cart (compare-and-set) and place the order ← commit point
        5. Clear the converted cart (best-effort)
        6. Enqueue confirmation emails (best-effort)

Nothing before step 4 writes an order; nothing after step 4 can undo it.
A failure while placing the order returns the cart to ``active`` and leaves
the checkout at ``payment_confirmed`` so the same intent can be resumed.
"""

import json
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from notifications.helpers import queue_admin_notification, queue_order_confirmation
from notifications.queue import NotificationQueue
from ordering.cart.cart import CartOwner, CartStatus, ShoppingCart
from ordering.cart.management import ClearConvertedCart
from ordering.checkout.checkout import Checkout, CheckoutState
from ordering.checkout.recovery import RecoveryAction, recovery_actions_for
from ordering.config import setting
from ordering.customer.customer import AddressTag, Customer, is_valid_email, normalize_email
from ordering.errors import (
    CartAlreadyConvertedError,
    CheckoutIntegrityError,
    PaymentDeclinedError,
    PaymentGatewayError,
    PaymentPendingError,
)
from ordering.order.creation import PlaceOrder
from ordering.order.notices import new_order_admin_message, order_confirmation_payload
from ordering.order.order import Order, ShippingAddress
from ordering.order.pricing import PricingStrategy, get_pricing_strategy
from payments.gateway import get_gateway
from payments.gateway.port import GatewayError, PaymentGateway, PaymentIntentResult

logger = structlog.get_logger(__name__)

ADDRESS_FIELDS = ("name", "street", "street2", "city", "state", "postal_code", "country", "phone")
AMOUNT_TOLERANCE = 0.005

# Gateway calls run here so a stalled call can be abandoned after the timeout
_gateway_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="gateway")


@dataclass(frozen=True)
class CheckoutResult:
    checkout_id: str
    order_id: str
    order_number: str
    status: str
    total: float
    currency: str


def validate_address(data: dict | None, prefix: str) -> dict:
    """Validate an address dict, returning it with only known, non-empty fields.

    Errors are keyed ``<prefix>.<field>``.
    """
    if not data:
        raise ValidationError({prefix: ["Address is required"]})

    cleaned = {field: data.get(field) for field in ADDRESS_FIELDS if data.get(field) not in (None, "")}
    if cleaned.get("country"):
        cleaned["country"] = str(cleaned["country"]).upper()
    try:
        address = ShippingAddress(**cleaned)
    except ValidationError as exc:
        raise ValidationError({f"{prefix}.{field}": messages for field, messages in exc.messages.items()}) from exc
    return {field: value for field, value in address.to_dict().items() if value is not None}


def validate_contact(contact: dict | None) -> dict:
    contact = dict(contact or {})
    email = normalize_email(contact.get("email"))
    if not is_valid_email(email):
        raise ValidationError({"contact.email": ["A valid email address is required"]})
    contact["email"] = email
    return contact


def _amounts_differ(left: float, right: float) -> bool:
    return abs(round(left, 2) - round(right, 2)) > AMOUNT_TOLERANCE


class CheckoutSaga:
    def __init__(
        self,
        gateway: PaymentGateway | None = None,
        queue: NotificationQueue | None = None,
        pricing: PricingStrategy | None = None,
        timeout: float | None = None,
    ) -> None:
        self._gateway = gateway
        self._queue = queue
        self._pricing = pricing
        self._timeout = timeout

    @property
    def gateway(self) -> PaymentGateway:
        return self._gateway if self._gateway is not None else get_gateway()

    @property
    def pricing(self) -> PricingStrategy:
        return self._pricing if self._pricing is not None else get_pricing_strategy()

    @property
    def timeout(self) -> float:
        if self._timeout is not None:
            return self._timeout
        return float(setting("GATEWAY_TIMEOUT_SECONDS", 15))

    # -------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------
    def begin(
        self,
        owner: CartOwner,
        contact: dict,
        shipping_address: dict,
        billing_address: dict | None = None,
        shipping_method: str = "standard",
    ) -> dict:
        """Steps 1-2: resolve the customer and create (or reuse) a payment intent."""
        contact = validate_contact(contact)
        shipping = validate_address(shipping_address, "shipping_address")
        billing = validate_address(billing_address, "billing_address") if billing_address else shipping

        cart = current_domain.repository_for(ShoppingCart).find_active_for(owner)
        if cart is None or not cart.items:
            raise ValidationError({"cart": ["Cart is empty"]})

        quote = self.pricing.quote(cart.subtotal, shipping_method, shipping, cart.currency)
        customer = self._resolve_customer(contact, shipping, billing)
        checkout = self._open_attempt(cart, customer, contact, quote.total, shipping_method, shipping, billing)

        if checkout.payment_intent_id is None:
            self._create_payment_intent(checkout)

        logger.info(
            "Checkout payment intent ready",
            checkout_id=str(checkout.id),
            cart_id=str(cart.id),
            attempt=checkout.attempt,
            payment_intent_id=checkout.payment_intent_id,
            amount=checkout.amount,
        )
        return {
            "checkout_id": str(checkout.id),
            "customer_id": str(customer.id),
            "payment_intent_id": checkout.payment_intent_id,
            "client_secret": checkout.client_secret,
            "amount": checkout.amount,
            "currency": checkout.currency,
        }

    def complete(
        self,
        customer_id,
        payment_intent_id: str,
        shipping_address: dict | None = None,
        billing_address: dict | None = None,
        shipping_method: str | None = None,
    ) -> CheckoutResult:
        """Steps 3-6 for an intent the client confirmed at the gateway."""
        repo = current_domain.repository_for(Checkout)
        checkout = self._checkout_for(payment_intent_id)

        if str(checkout.customer_id) != str(customer_id):
            raise ValidationError({"customer_id": ["Payment intent does not belong to this customer"]})

        self._ensure_resumable(checkout)

        if shipping_method and shipping_method != checkout.shipping_method:
            raise ValidationError({"shipping_method": ["Shipping method cannot change after payment was created"]})
        if shipping_address:
            shipping = validate_address(shipping_address, "shipping_address")
            billing = validate_address(billing_address, "billing_address") if billing_address else shipping
            checkout.shipping_address = json.dumps(shipping)
            checkout.billing_address = json.dumps(billing)
            repo.add(checkout)

        intent = self._call_gateway(self.gateway.retrieve_payment_intent, payment_intent_id)
        return self._finish(checkout, intent)

    def retry(self, payment_intent_id: str, payment_method_id: str | None = None) -> CheckoutResult:
        """Resume an attempt from payment confirmation with its stored addresses."""
        checkout = self._checkout_for(payment_intent_id)
        self._ensure_resumable(checkout)

        logger.info(
            "Retrying checkout payment",
            checkout_id=str(checkout.id),
            payment_intent_id=payment_intent_id,
            with_new_payment_method=bool(payment_method_id),
        )
        if payment_method_id:
            intent = self._call_gateway(self.gateway.confirm_payment_intent, payment_intent_id, payment_method_id)
        else:
            intent = self._call_gateway(self.gateway.retrieve_payment_intent, payment_intent_id)
        return self._finish(checkout, intent)

    def reconcile(self, payment_intent_id: str) -> CheckoutResult | None:
        """Drive an attempt to its outcome from a gateway notification.

        Covers clients that paid but never called ``complete``. Returns the
        result when this call placed the order, ``None`` when there was
        nothing to do or the payment did not succeed.
        """
        checkout = current_domain.repository_for(Checkout).find_by_payment_intent(payment_intent_id)
        if checkout is None:
            logger.warning("Ignoring gateway event for unknown payment intent", payment_intent_id=payment_intent_id)
            return None
        if checkout.has_reached(CheckoutState.ORDER_CREATED):
            logger.info("Gateway event for committed checkout", checkout_id=str(checkout.id))
            return None
        if checkout.current_state == CheckoutState.ABORTED and not checkout.can_be_reopened:
            logger.info("Gateway event for abandoned checkout", checkout_id=str(checkout.id))
            return None

        intent = self._call_gateway(self.gateway.retrieve_payment_intent, payment_intent_id)
        if checkout.current_state == CheckoutState.ABORTED and not intent.succeeded:
            return None

        self._ensure_resumable(checkout)
        try:
            return self._finish(checkout, intent)
        except (PaymentDeclinedError, PaymentPendingError) as exc:
            logger.info("Gateway event did not settle checkout", checkout_id=str(checkout.id), code=exc.code)
            return None
        except CartAlreadyConvertedError:
            return None

    # -------------------------------------------------------------------
    # Step 1: customer
    # -------------------------------------------------------------------
    def _resolve_customer(self, contact: dict, shipping: dict, billing: dict) -> Customer:
        repo = current_domain.repository_for(Customer)
        customer, created = repo.find_or_register(
            contact["email"],
            first_name=contact.get("first_name"),
            last_name=contact.get("last_name"),
            phone=contact.get("phone"),
        )

        changed = False
        for tag, address in ((AddressTag.SHIPPING, shipping), (AddressTag.BILLING, billing)):
            if customer.default_address(tag) is None:
                customer.add_address(tag, **address)
                changed = True
        if changed:
            repo.add(customer)

        logger.info("Resolved checkout customer", customer_id=str(customer.id), created=created)
        return customer

    # -------------------------------------------------------------------
    # Step 2: payment intent
    # -------------------------------------------------------------------
    def _open_attempt(self, cart, customer, contact, amount, shipping_method, shipping, billing) -> Checkout:
        repo = current_domain.repository_for(Checkout)
        latest = repo.latest_for_cart(cart.id)
        attempt = 1

        if latest is not None:
            if (
                latest.is_open
                and str(latest.customer_id) == str(customer.id)
                and latest.currency == cart.currency
                and not _amounts_differ(latest.amount, amount)
            ):
                latest.shipping_method = shipping_method
                latest.shipping_address = json.dumps(shipping)
                latest.billing_address = json.dumps(billing)
                repo.add(latest)
                logger.info("Reusing open checkout attempt", checkout_id=str(latest.id), attempt=latest.attempt)
                return latest

            if latest.is_open:
                if latest.has_reached(CheckoutState.PAYMENT_CONFIRMED):
                    logger.error(
                        "Superseding a checkout whose payment was confirmed, refund needed",
                        checkout_id=str(latest.id),
                        payment_intent_id=latest.payment_intent_id,
                        amount=latest.amount,
                    )
                latest.abort("superseded")
                repo.add(latest)
            attempt = latest.attempt + 1

        checkout = Checkout.start(
            cart_id=cart.id,
            attempt=attempt,
            amount=amount,
            currency=cart.currency,
            shipping_method=shipping_method,
            shipping_address=shipping,
            billing_address=billing,
            contact_email=contact["email"],
        )
        checkout.resolve_customer(customer.id)
        # Persisted before the gateway call so a retried call reuses the same key
        repo.add(checkout)
        return checkout

    def _create_payment_intent(self, checkout: Checkout) -> None:
        intent = self._call_gateway(
            self.gateway.create_payment_intent,
            amount=checkout.amount,
            currency=checkout.currency,
            idempotency_key=checkout.idempotency_key,
            metadata={
                "checkout_id": str(checkout.id),
                "cart_id": str(checkout.cart_id),
                "customer_id": str(checkout.customer_id),
            },
        )
        checkout.record_payment_intent(intent.intent_id, intent.client_secret, intent.status)
        current_domain.repository_for(Checkout).add(checkout)

    # -------------------------------------------------------------------
    # Step 3: confirmation
    # -------------------------------------------------------------------
    def _checkout_for(self, payment_intent_id: str) -> Checkout:
        checkout = current_domain.repository_for(Checkout).find_by_payment_intent(payment_intent_id)
        if checkout is None:
            raise ObjectNotFoundError(f"Payment intent {payment_intent_id} is not known")
        return checkout

    def _ensure_resumable(self, checkout: Checkout) -> None:
        if checkout.has_reached(CheckoutState.ORDER_CREATED):
            raise CartAlreadyConvertedError(checkout.cart_id)

        if checkout.current_state == CheckoutState.ABORTED:
            if not checkout.can_be_reopened:
                raise ValidationError(
                    {"payment_intent_id": [f"Checkout was abandoned: {checkout.failure_reason or 'aborted'}"]}
                )
            checkout.reopen_for_retry()
            current_domain.repository_for(Checkout).add(checkout)
            logger.info("Reopened aborted checkout", checkout_id=str(checkout.id))

        if checkout.current_state not in (CheckoutState.PAYMENT_INTENT_CREATED, CheckoutState.PAYMENT_CONFIRMED):
            raise ValidationError({"payment_intent_id": [f"Checkout is not awaiting payment ({checkout.state})"]})

    def _call_gateway(self, fn, *args, **kwargs) -> PaymentIntentResult:
        future = _gateway_executor.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.warning("Payment gateway call timed out", operation=fn.__name__, timeout=self.timeout)
            raise PaymentGatewayError(
                "The payment provider did not respond in time. Please try again.",
                code="timeout",
                recovery_actions=(RecoveryAction.RETRY.value,),
            ) from None
        except GatewayError as exc:
            logger.warning("Payment gateway call failed", operation=fn.__name__, code=exc.code, error=exc.message)
            actions = recovery_actions_for(exc.code)
            raise PaymentGatewayError(exc.message, code=exc.code, recovery_actions=actions) from exc

    def _settle_payment(self, checkout: Checkout, intent: PaymentIntentResult) -> Checkout:
        repo = current_domain.repository_for(Checkout)

        if (
            intent.intent_id != checkout.payment_intent_id
            or _amounts_differ(intent.amount, checkout.amount)
            or (intent.currency or "").upper() != checkout.currency
        ):
            logger.error(
                "Payment intent does not match checkout",
                checkout_id=str(checkout.id),
                expected_intent=checkout.payment_intent_id,
                actual_intent=intent.intent_id,
                expected_amount=checkout.amount,
                actual_amount=intent.amount,
                expected_currency=checkout.currency,
                actual_currency=intent.currency,
            )
            checkout.abort("payment intent mismatch", RecoveryAction.CONTACT_SUPPORT.value)
            repo.add(checkout)
            raise CheckoutIntegrityError("Payment intent does not match checkout", checkout_id=str(checkout.id))

        if intent.failed:
            actions = recovery_actions_for(intent.failure_code)
            message = intent.failure_message or "Your payment could not be completed."
            checkout.payment_status = intent.status
            checkout.decline(message, actions[0])
            repo.add(checkout)
            logger.warning(
                "Payment declined",
                checkout_id=str(checkout.id),
                payment_intent_id=intent.intent_id,
                code=intent.failure_code,
                recovery_action=actions[0],
            )
            raise PaymentDeclinedError(message, code=intent.failure_code, recovery_actions=actions)

        if not intent.succeeded:
            checkout.payment_status = intent.status
            repo.add(checkout)
            raise PaymentPendingError(
                "Payment has not been confirmed yet. Please try again.",
                code=intent.status,
                recovery_actions=(RecoveryAction.RETRY.value,),
            )

        return repo.confirm_payment(checkout.id, intent.status)

    # -------------------------------------------------------------------
    # Steps 4-6
    # -------------------------------------------------------------------
    def _finish(self, checkout: Checkout, intent: PaymentIntentResult) -> CheckoutResult:
        checkout = self._settle_payment(checkout, intent)
        order = self._commit_order(checkout)

        # The order is committed; nothing below may fail the checkout
        tracked = self._record_progress(checkout, checkout.record_order, order.id, order.order_number)

        self._clear_cart(checkout)
        if tracked:
            tracked = self._record_progress(checkout, checkout.advance_to, CheckoutState.CART_CLEARED)

        customer = self._record_customer_order(checkout, order)
        self._enqueue_notifications(order, customer)
        if tracked:
            self._record_progress(checkout, checkout.mark_complete)

        logger.info(
            "Checkout complete",
            checkout_id=str(checkout.id),
            order_id=str(order.id),
            order_number=order.order_number,
            total=order.total,
        )
        return CheckoutResult(
            checkout_id=str(checkout.id),
            order_id=str(order.id),
            order_number=order.order_number,
            status=order.status,
            total=order.total,
            currency=order.currency,
        )

    def _commit_order(self, checkout: Checkout) -> Order:
        carts = current_domain.repository_for(ShoppingCart)
        if not carts.compare_and_set_status(checkout.cart_id, CartStatus.ACTIVE, CartStatus.CONVERTED, "checkout"):
            if current_domain.repository_for(Order).find_by_payment_reference(checkout.payment_intent_id):
                logger.info(
                    "Payment already committed by a concurrent checkout",
                    checkout_id=str(checkout.id),
                    payment_intent_id=checkout.payment_intent_id,
                )
            else:
                logger.error(
                    "Cart was already converted, captured payment needs a refund",
                    checkout_id=str(checkout.id),
                    cart_id=str(checkout.cart_id),
                    payment_intent_id=checkout.payment_intent_id,
                    amount=checkout.amount,
                )
            raise CartAlreadyConvertedError(checkout.cart_id)

        shipping, billing = checkout.addresses()
        try:
            cart = carts.get(checkout.cart_id)
            quote = self.pricing.quote(cart.subtotal, checkout.shipping_method, shipping, cart.currency)
            if not cart.items or _amounts_differ(quote.total, checkout.amount):
                raise CheckoutIntegrityError(
                    "Cart total no longer matches the payment",
                    checkout_id=str(checkout.id),
                    paid=checkout.amount,
                    recomputed=quote.total,
                )

            order_id = current_domain.process(
                PlaceOrder(
                    customer_id=checkout.customer_id,
                    cart_id=checkout.cart_id,
                    items=json.dumps([item.to_dict() for item in cart.items]),
                    shipping_address=json.dumps(shipping),
                    billing_address=json.dumps(billing),
                    shipping_method=checkout.shipping_method,
                    shipping_cost=quote.shipping_cost,
                    tax_amount=quote.tax_amount,
                    currency=cart.currency,
                    payment_reference=checkout.payment_intent_id,
                ),
                asynchronous=False,
            )
        except CheckoutIntegrityError as exc:
            self._reactivate_cart(checkout)
            checkout.abort(exc.detail, RecoveryAction.CONTACT_SUPPORT.value)
            current_domain.repository_for(Checkout).add(checkout)
            logger.error(
                "Cart changed after payment, captured payment needs a refund",
                **{"checkout_id": str(checkout.id), "payment_intent_id": checkout.payment_intent_id, **exc.context},
            )
            raise
        except Exception:
            logger.exception(
                "Order creation failed, returning cart to active",
                checkout_id=str(checkout.id),
                cart_id=str(checkout.cart_id),
            )
            self._reactivate_cart(checkout)
            raise

        return current_domain.repository_for(Order).get(order_id)

    def _record_progress(self, checkout: Checkout, step, *args) -> bool:
        try:
            step(*args)
            current_domain.repository_for(Checkout).add(checkout)
            return True
        except Exception as exc:
            logger.error(
                "Could not record checkout progress after the order was placed",
                checkout_id=str(checkout.id),
                order_id=str(checkout.order_id) if checkout.order_id else None,
                state=checkout.state,
                error=str(exc),
            )
            return False

    def _reactivate_cart(self, checkout: Checkout) -> None:
        carts = current_domain.repository_for(ShoppingCart)
        try:
            restored = carts.compare_and_set_status(
                checkout.cart_id, CartStatus.CONVERTED, CartStatus.ACTIVE, "checkout_compensation"
            )
        except Exception as exc:
            restored = False
            logger.error("Cart compensation raised", cart_id=str(checkout.cart_id), error=str(exc))
        if not restored:
            logger.error("Could not return cart to active", cart_id=str(checkout.cart_id))

    def _clear_cart(self, checkout: Checkout) -> None:
        try:
            current_domain.process(ClearConvertedCart(cart_id=checkout.cart_id), asynchronous=False)
        except Exception as exc:
            logger.warning(
                "Could not clear converted cart",
                checkout_id=str(checkout.id),
                cart_id=str(checkout.cart_id),
                error=str(exc),
            )

    def _record_customer_order(self, checkout: Checkout, order: Order) -> Customer | None:
        repo = current_domain.repository_for(Customer)
        try:
            customer = repo.get(checkout.customer_id)
            customer.record_order(order.total)
            repo.add(customer)
            return customer
        except Exception as exc:
            logger.warning("Could not update customer stats", customer_id=str(checkout.customer_id), error=str(exc))
            return None

    def _enqueue_notifications(self, order: Order, customer: Customer | None) -> None:
        try:
            if customer is None:
                customer = current_domain.repository_for(Customer).get(order.customer_id)
            queue_order_confirmation(order_confirmation_payload(order, customer), queue=self._queue)

            admin_email = setting("ADMIN_EMAIL")
            if admin_email:
                subject, message = new_order_admin_message(order, customer)
                queue_admin_notification(subject, message, to=admin_email, queue=self._queue)
        except Exception as exc:
            logger.warning("Could not queue order notifications", order_id=str(order.id), error=str(exc))
