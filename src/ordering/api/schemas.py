"""Pydantic request/response schemas for the storefront API.

These are external contracts, kept separate from the internal Protean
commands they are translated into.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    name: str
    street: str
    street2: str | None = None
    city: str
    state: str | None = None
    postal_code: str
    country: str
    phone: str | None = None


class ContactSchema(BaseModel):
    email: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class CartOwnerRequest(BaseModel):
    customer_id: str | None = None
    session_id: str | None = None


class AddToCartRequest(CartOwnerRequest):
    product_id: str
    variant_id: str | None = None
    quantity: int = Field(ge=1, default=1)
    currency: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "session_id": "sess-7f3a",
                    "product_id": "prod-001",
                    "variant_id": "var-001",
                    "quantity": 2,
                }
            ]
        }
    }


class UpdateCartQuantityRequest(CartOwnerRequest):
    product_id: str
    variant_id: str | None = None
    # Negative values are rejected by the cart with a field error
    quantity: int


class MergeGuestCartRequest(BaseModel):
    customer_id: str
    session_id: str


class CartItemSchema(BaseModel):
    product_id: str
    variant_id: str | None = None
    title: str | None = None
    sku: str | None = None
    quantity: int
    unit_price: float
    total_price: float


class CartResponse(BaseModel):
    cart_id: str | None = None
    items: list[CartItemSchema] = []
    subtotal: float = 0.0
    item_count: int = 0
    currency: str = "USD"
    status: str = "active"


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
class PaymentIntentRequest(CartOwnerRequest):
    contact: ContactSchema
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    shipping_method: str = "standard"


class PaymentIntentResponse(BaseModel):
    checkout_id: str
    customer_id: str
    payment_intent_id: str
    client_secret: str | None = None
    amount: float
    currency: str


class CompleteCheckoutRequest(BaseModel):
    customer_id: str
    payment_intent_id: str
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None
    shipping_method: str | None = None


class RetryPaymentRequest(BaseModel):
    payment_method_id: str | None = None


class CheckoutResultResponse(BaseModel):
    order_id: str
    order_number: str
    status: str
    total: float


class WebhookResponse(BaseModel):
    status: str
    order_number: str | None = None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderItemSchema(BaseModel):
    product_id: str
    variant_id: str | None = None
    sku: str | None = None
    title: str
    quantity: int
    unit_price: float
    total_price: float


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    customer_id: str
    status: str
    payment_status: str
    currency: str
    subtotal: float
    shipping_cost: float
    tax_amount: float
    total: float
    items: list[OrderItemSchema]


class UpdateOrderStatusRequest(BaseModel):
    status: str
    message: str | None = None
    tracking_number: str | None = None
    estimated_delivery: str | None = None
