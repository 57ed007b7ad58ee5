"""FastAPI routes for the storefront: cart, checkout and orders."""

import json
from dataclasses import asdict

from fastapi import APIRouter, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.api.schemas import (
    AddToCartRequest,
    CartResponse,
    CheckoutResultResponse,
    CompleteCheckoutRequest,
    MergeGuestCartRequest,
    OrderResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    RetryPaymentRequest,
    UpdateCartQuantityRequest,
    UpdateOrderStatusRequest,
    WebhookResponse,
)
from ordering.cart.cart import CartOwner, ShoppingCart
from ordering.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartQuantity
from ordering.cart.management import MergeGuestCart
from ordering.checkout.saga import CheckoutSaga
from ordering.order.order import Order
from ordering.order.status import UpdateOrderStatus
from payments.gateway import get_gateway

PAYMENT_EVENTS = {"payment_intent.succeeded", "payment_intent.payment_failed"}


def _cart_snapshot(cart_id: str | None) -> CartResponse:
    if cart_id is None:
        return CartResponse()
    cart = current_domain.repository_for(ShoppingCart).get(cart_id)
    return CartResponse(**cart.to_snapshot())


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("", response_model=CartResponse)
async def get_cart(customer_id: str | None = None, session_id: str | None = None) -> CartResponse:
    owner = CartOwner.from_ids(customer_id=customer_id, session_id=session_id)
    cart = current_domain.repository_for(ShoppingCart).find_active_for(owner)
    if cart is None:
        return CartResponse()
    return CartResponse(**cart.to_snapshot())


@cart_router.post("/items", response_model=CartResponse)
async def add_cart_item(body: AddToCartRequest) -> CartResponse:
    command = AddToCart(
        customer_id=body.customer_id,
        session_id=body.session_id,
        product_id=body.product_id,
        variant_id=body.variant_id,
        quantity=body.quantity,
        currency=body.currency,
    )
    cart_id = current_domain.process(command, asynchronous=False)
    return _cart_snapshot(cart_id)


@cart_router.put("/items", response_model=CartResponse)
async def update_cart_item(body: UpdateCartQuantityRequest) -> CartResponse:
    command = UpdateCartQuantity(
        customer_id=body.customer_id,
        session_id=body.session_id,
        product_id=body.product_id,
        variant_id=body.variant_id,
        quantity=body.quantity,
    )
    cart_id = current_domain.process(command, asynchronous=False)
    return _cart_snapshot(cart_id)


@cart_router.delete("/items", response_model=CartResponse)
async def remove_cart_item(
    product_id: str,
    variant_id: str | None = None,
    customer_id: str | None = None,
    session_id: str | None = None,
) -> CartResponse:
    command = RemoveFromCart(
        customer_id=customer_id,
        session_id=session_id,
        product_id=product_id,
        variant_id=variant_id,
    )
    cart_id = current_domain.process(command, asynchronous=False)
    return _cart_snapshot(cart_id)


@cart_router.delete("", response_model=CartResponse)
async def clear_cart(customer_id: str | None = None, session_id: str | None = None) -> CartResponse:
    command = ClearCart(customer_id=customer_id, session_id=session_id)
    cart_id = current_domain.process(command, asynchronous=False)
    return _cart_snapshot(cart_id)


@cart_router.post("/merge", response_model=CartResponse)
async def merge_guest_cart(body: MergeGuestCartRequest) -> CartResponse:
    command = MergeGuestCart(customer_id=body.customer_id, session_id=body.session_id)
    cart_id = current_domain.process(command, asynchronous=False)
    return _cart_snapshot(cart_id)


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("/payment-intent", response_model=PaymentIntentResponse)
def create_payment_intent(body: PaymentIntentRequest) -> PaymentIntentResponse:
    owner = CartOwner.from_ids(customer_id=body.customer_id, session_id=body.session_id)
    result = CheckoutSaga().begin(
        owner,
        contact=body.contact.model_dump(),
        shipping_address=body.shipping_address.model_dump(),
        billing_address=body.billing_address.model_dump() if body.billing_address else None,
        shipping_method=body.shipping_method,
    )
    return PaymentIntentResponse(**result)


@checkout_router.post("/orders", status_code=201, response_model=CheckoutResultResponse)
def complete_checkout(body: CompleteCheckoutRequest) -> CheckoutResultResponse:
    result = CheckoutSaga().complete(
        customer_id=body.customer_id,
        payment_intent_id=body.payment_intent_id,
        shipping_address=body.shipping_address.model_dump() if body.shipping_address else None,
        billing_address=body.billing_address.model_dump() if body.billing_address else None,
        shipping_method=body.shipping_method,
    )
    return CheckoutResultResponse(**asdict(result))


@checkout_router.post(
    "/payment-intents/{payment_intent_id}/retry",
    status_code=201,
    response_model=CheckoutResultResponse,
)
def retry_payment(payment_intent_id: str, body: RetryPaymentRequest) -> CheckoutResultResponse:
    result = CheckoutSaga().retry(payment_intent_id, payment_method_id=body.payment_method_id)
    return CheckoutResultResponse(**asdict(result))


@checkout_router.post("/webhook", response_model=WebhookResponse)
async def payment_webhook(request: Request, stripe_signature: str = Header(default="")) -> WebhookResponse:
    """Settle checkouts from gateway payment events."""
    payload = (await request.body()).decode("utf-8")
    if not get_gateway().verify_webhook_signature(payload, stripe_signature):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        event = json.loads(payload)
        event_type = event["type"]
        intent_id = event["data"]["object"]["id"]
    except (ValueError, KeyError, TypeError):
        raise HTTPException(status_code=400, detail="Malformed webhook payload") from None

    if event_type not in PAYMENT_EVENTS:
        return WebhookResponse(status="ignored")

    result = await run_in_threadpool(CheckoutSaga().reconcile, intent_id)
    if result is None:
        return WebhookResponse(status="processed")
    return WebhookResponse(status="order_placed", order_number=result.order_number)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("/{order_number}", response_model=OrderResponse)
async def get_order(order_number: str) -> OrderResponse:
    order = current_domain.repository_for(Order).find_by_number(order_number)
    if order is None:
        raise ObjectNotFoundError(f"Order {order_number} does not exist")
    return OrderResponse(**order.to_summary())


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> OrderResponse:
    command = UpdateOrderStatus(
        order_id=order_id,
        status=body.status,
        message=body.message,
        tracking_number=body.tracking_number,
        estimated_delivery=body.estimated_delivery,
    )
    summary = current_domain.process(command, asynchronous=False)
    return OrderResponse(**summary)
