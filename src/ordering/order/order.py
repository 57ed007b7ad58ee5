"""Order aggregate — the committed record of a paid checkout.

Line items are snapshots of title, sku and price at order time, never live
catalogue references. Totals are derived server-side: ``subtotal`` from the
items, ``shipping_cost`` and ``tax_amount`` from the pricing strategy, and
``total`` from those three, recomputed on every write.

Status machine:
    pending → confirmed → processing → shipped → delivered → refunded
    pending/confirmed/processing → cancelled → refunded
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from ordering.domain import ordering
from ordering.order.events import OrderPlaced, OrderStatusChanged


class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),
}


@ordering.value_object(part_of="Order")
class ShippingAddress:
    """A delivery or billing address as captured at checkout.

    Immutable once recorded on an order, regardless of later changes to the
    customer's saved addresses.
    """

    name = String(required=True, max_length=200)
    street = String(required=True, max_length=255)
    street2 = String(max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=2)
    phone = String(max_length=30)


@ordering.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    sku = String(max_length=100)
    title = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    total_price = Float(required=True, min_value=0.0)


@ordering.aggregate
class Order:
    order_number = String(required=True, max_length=50, unique=True)
    customer_id = Identifier(required=True)
    cart_id = Identifier()
    items = HasMany(OrderItem)
    shipping_address = ValueObject(ShippingAddress)
    billing_address = ValueObject(ShippingAddress)
    shipping_method = String(max_length=50)
    currency = String(max_length=3, default="USD")
    subtotal = Float(default=0.0)
    shipping_cost = Float(default=0.0)
    tax_amount = Float(default=0.0)
    total = Float(default=0.0)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payment_reference = String(max_length=255)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def total_must_equal_its_components(self):
        expected = round((self.subtotal or 0.0) + (self.shipping_cost or 0.0) + (self.tax_amount or 0.0), 2)
        if abs((self.total or 0.0) - expected) > 0.005:
            raise ValidationError({"total": [f"Total {self.total} does not equal subtotal + shipping + tax"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        order_number,
        customer_id,
        items_data,
        shipping_address,
        billing_address,
        shipping_method,
        shipping_cost,
        tax_amount,
        currency="USD",
        cart_id=None,
        payment_reference=None,
        payment_status=PaymentStatus.PAID.value,
        status=OrderStatus.CONFIRMED.value,
    ):
        """Build an order from item snapshots and server-side pricing.

        ``items_data`` is a list of dicts with product_id, variant_id, title,
        sku, unit_price and quantity; line totals and the subtotal are
        computed here.
        """
        if not items_data:
            raise ValidationError({"items": ["An order must contain at least one item"]})

        items = [
            OrderItem(
                product_id=item["product_id"],
                variant_id=item.get("variant_id"),
                sku=item.get("sku"),
                title=item.get("title") or str(item["product_id"]),
                quantity=item["quantity"],
                unit_price=item["unit_price"],
                total_price=round(item["unit_price"] * item["quantity"], 2),
            )
            for item in items_data
        ]
        subtotal = round(sum(item.total_price for item in items), 2)
        shipping_cost = round(shipping_cost, 2)
        tax_amount = round(tax_amount, 2)
        now = datetime.now(UTC)

        order = cls(
            order_number=order_number,
            customer_id=customer_id,
            cart_id=cart_id,
            shipping_address=ShippingAddress(**shipping_address),
            billing_address=ShippingAddress(**(billing_address or shipping_address)),
            shipping_method=shipping_method,
            currency=currency.upper(),
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            tax_amount=tax_amount,
            total=round(subtotal + shipping_cost + tax_amount, 2),
            status=status,
            payment_status=payment_status,
            payment_reference=payment_reference,
            created_at=now,
            updated_at=now,
        )
        for item in items:
            order.add_items(item)

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                customer_id=str(customer_id),
                cart_id=str(cart_id) if cart_id else None,
                item_count=sum(item.quantity for item in items),
                total=order.total,
                currency=order.currency,
                payment_reference=payment_reference or "",
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def update_status(self, new_status: OrderStatus) -> str:
        """Move the order along the fulfillment machine. Returns the previous status."""
        self._assert_can_transition(new_status)
        previous = self.status
        now = datetime.now(UTC)

        self.status = new_status.value
        if new_status == OrderStatus.REFUNDED and self.payment_status == PaymentStatus.PAID.value:
            self.payment_status = PaymentStatus.REFUNDED.value
        self.updated_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                previous_status=previous,
                new_status=new_status.value,
                changed_at=now,
            )
        )
        return previous

    def to_summary(self) -> dict:
        return {
            "order_id": str(self.id),
            "order_number": self.order_number,
            "customer_id": str(self.customer_id),
            "status": self.status,
            "payment_status": self.payment_status,
            "currency": self.currency,
            "subtotal": self.subtotal,
            "shipping_cost": self.shipping_cost,
            "tax_amount": self.tax_amount,
            "total": self.total,
            "items": [
                {
                    "product_id": str(item.product_id),
                    "variant_id": str(item.variant_id) if item.variant_id else None,
                    "sku": item.sku,
                    "title": item.title,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "total_price": item.total_price,
                }
                for item in self.items
            ],
        }
