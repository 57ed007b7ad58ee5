"""Shopping Cart aggregate — the cart consistency engine.

A cart belongs to exactly one owner: an authenticated customer or a guest
session. Lines are keyed by ``(product_id, variant_id-or-None)`` and carry a
price snapshot taken when the line was first added. ``subtotal`` and
``item_count`` are derived: every mutating method ends by recomputing them
from the lines, so they are never written independently.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String

from ordering.cart.events import (
    CartCleared,
    CartItemAdded,
    CartItemRemoved,
    CartQuantityUpdated,
    CartsMerged,
    CartStatusChanged,
)
from ordering.domain import ordering

DEFAULT_TTL_DAYS = 30


class CartStatus(Enum):
    ACTIVE = "active"
    ABANDONED = "abandoned"
    CONVERTED = "converted"


_VALID_TRANSITIONS = {
    CartStatus.ACTIVE: {CartStatus.ABANDONED, CartStatus.CONVERTED},
    # Only the checkout saga's compensation moves a converted cart back
    CartStatus.CONVERTED: {CartStatus.ACTIVE},
    CartStatus.ABANDONED: set(),
}


def normalize_variant(variant_id) -> str | None:
    """Absent and empty variants are the same key."""
    if variant_id is None or str(variant_id).strip() == "":
        return None
    return str(variant_id)


@dataclass(frozen=True)
class CartOwner:
    """Either a customer id or a guest session id, never both."""

    customer_id: str | None = None
    session_id: str | None = None

    @classmethod
    def from_ids(cls, customer_id=None, session_id=None) -> "CartOwner":
        if customer_id:
            return cls(customer_id=str(customer_id))
        if session_id:
            return cls(session_id=str(session_id))
        raise ValidationError({"owner": ["Either customer_id or session_id is required"]})

    @property
    def lookup(self) -> dict:
        if self.customer_id:
            return {"customer_id": self.customer_id}
        return {"session_id": self.session_id}


@ordering.entity(part_of="ShoppingCart")
class CartItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    title = String(max_length=255)
    sku = String(max_length=100)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    total_price = Float(default=0.0)
    added_at = DateTime()

    @property
    def key(self) -> tuple[str, str | None]:
        return (str(self.product_id), normalize_variant(self.variant_id))

    def matches(self, product_id, variant_id) -> bool:
        return self.key == (str(product_id), normalize_variant(variant_id))

    def to_dict(self) -> dict:
        return {
            "product_id": str(self.product_id),
            "variant_id": normalize_variant(self.variant_id),
            "title": self.title,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
        }


@ordering.aggregate
class ShoppingCart:
    customer_id = Identifier()
    session_id = String(max_length=255)
    items = HasMany(CartItem)
    currency = String(max_length=3, default="USD")
    status = String(choices=CartStatus, default=CartStatus.ACTIVE.value)
    subtotal = Float(default=0.0)
    item_count = Integer(default=0)
    expires_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def cart_must_have_exactly_one_owner(self):
        if bool(self.customer_id) == bool(self.session_id):
            raise ValidationError({"owner": ["A cart belongs to exactly one customer or guest session"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, owner: CartOwner, currency: str = "USD", ttl_days: int = DEFAULT_TTL_DAYS):
        now = datetime.now(UTC)
        return cls(
            customer_id=owner.customer_id,
            session_id=owner.session_id,
            currency=currency.upper(),
            status=CartStatus.ACTIVE.value,
            subtotal=0.0,
            item_count=0,
            expires_at=now + timedelta(days=ttl_days),
            created_at=now,
            updated_at=now,
        )

    @property
    def is_active(self) -> bool:
        return self.status == CartStatus.ACTIVE.value

    @property
    def owner(self) -> CartOwner:
        return CartOwner.from_ids(self.customer_id, self.session_id)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return expires_at <= (now or datetime.now(UTC))

    def find_item(self, product_id, variant_id=None) -> CartItem | None:
        return next((item for item in self.items if item.matches(product_id, variant_id)), None)

    def _assert_active(self, action: str) -> None:
        if not self.is_active:
            raise ValidationError({"status": [f"Cannot {action} a cart that is {self.status}"]})

    def _recalculate_totals(self) -> None:
        for item in self.items:
            item.total_price = round(item.quantity * item.unit_price, 2)
        self.subtotal = round(sum(item.total_price for item in self.items), 2)
        self.item_count = sum(item.quantity for item in self.items)
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Line management
    # -------------------------------------------------------------------
    def add_item(self, product_id, variant_id, quantity, unit_price, title=None, sku=None):
        """Add a line, or top up the existing line with the same key.

        The price snapshot of an existing line is kept; ``unit_price`` only
        applies to a new line.
        """
        self._assert_active("add items to")
        if quantity is None or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        variant_id = normalize_variant(variant_id)
        existing = self.find_item(product_id, variant_id)
        if existing:
            existing.quantity += quantity
            line = existing
        else:
            line = CartItem(
                product_id=product_id,
                variant_id=variant_id,
                title=title,
                sku=sku,
                quantity=quantity,
                unit_price=round(unit_price, 2),
                added_at=datetime.now(UTC),
            )
            self.add_items(line)

        self._recalculate_totals()

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                product_id=str(product_id),
                variant_id=variant_id,
                quantity=quantity,
                line_quantity=line.quantity,
                unit_price=line.unit_price,
            )
        )
        return line

    def update_item_quantity(self, product_id, variant_id, quantity):
        """Set a line's quantity. Zero removes the line."""
        self._assert_active("update items in")
        if quantity is None or quantity < 0:
            raise ValidationError({"quantity": ["Quantity cannot be negative"]})

        item = self.find_item(product_id, variant_id)
        if item is None:
            if quantity == 0:
                return
            raise ValidationError({"item": ["Item not found in cart"]})

        if quantity == 0:
            self._drop_line(item)
            return

        previous_quantity = item.quantity
        item.quantity = quantity
        self._recalculate_totals()

        self.raise_(
            CartQuantityUpdated(
                cart_id=str(self.id),
                product_id=str(product_id),
                variant_id=normalize_variant(variant_id),
                previous_quantity=previous_quantity,
                new_quantity=quantity,
            )
        )

    def remove_item(self, product_id, variant_id=None) -> bool:
        """Remove a line. Removing an absent line is a no-op and returns False."""
        item = self.find_item(product_id, variant_id)
        if item is None:
            return False
        self._assert_active("remove items from")
        self._drop_line(item)
        return True

    def _drop_line(self, item: CartItem) -> None:
        product_id, variant_id = item.key
        self.remove_items(item)
        self._recalculate_totals()

        self.raise_(CartItemRemoved(cart_id=str(self.id), product_id=product_id, variant_id=variant_id))

        if not self.items:
            # Emptied by the shopper: keep the document for diagnostics
            self.change_status(CartStatus.ABANDONED, reason="emptied")

    def clear(self) -> int:
        """Empty the cart and zero its totals. Status is left untouched."""
        removed = len(self.items)
        for item in list(self.items):
            self.remove_items(item)
        self._recalculate_totals()
        self.raise_(CartCleared(cart_id=str(self.id), items_removed=removed))
        return removed

    # -------------------------------------------------------------------
    # Guest → customer
    # -------------------------------------------------------------------
    def merge_from(self, guest_cart: "ShoppingCart") -> int:
        """Fold a guest cart's lines into this cart and abandon the guest cart.

        Lines already present here keep this cart's price snapshot.
        """
        self._assert_active("merge into")
        merged = 0
        for guest_item in guest_cart.items:
            existing = self.find_item(guest_item.product_id, guest_item.variant_id)
            if existing:
                existing.quantity += guest_item.quantity
            else:
                self.add_items(
                    CartItem(
                        product_id=guest_item.product_id,
                        variant_id=normalize_variant(guest_item.variant_id),
                        title=guest_item.title,
                        sku=guest_item.sku,
                        quantity=guest_item.quantity,
                        unit_price=guest_item.unit_price,
                        added_at=guest_item.added_at or datetime.now(UTC),
                    )
                )
            merged += 1

        self._recalculate_totals()
        guest_cart.change_status(CartStatus.ABANDONED, reason="merged")

        self.raise_(CartsMerged(cart_id=str(self.id), source_cart_id=str(guest_cart.id), items_merged_count=merged))
        return merged

    def assign_to_customer(self, customer_id) -> None:
        """Hand a guest cart over to a customer who has no cart of their own."""
        self._assert_active("reassign")
        with atomic_change(self):
            self.customer_id = customer_id
            self.session_id = None
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def change_status(self, new_status: CartStatus, reason: str | None = None) -> None:
        current = CartStatus(self.status)
        if new_status not in _VALID_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot transition cart from {current.value} to {new_status.value}"]})

        now = datetime.now(UTC)
        self.status = new_status.value
        self.updated_at = now

        self.raise_(
            CartStatusChanged(
                cart_id=str(self.id),
                previous_status=current.value,
                new_status=new_status.value,
                reason=reason,
                changed_at=now,
            )
        )

    def abandon(self, reason: str = "abandoned") -> None:
        self.change_status(CartStatus.ABANDONED, reason=reason)

    def to_snapshot(self) -> dict:
        return {
            "cart_id": str(self.id),
            "customer_id": str(self.customer_id) if self.customer_id else None,
            "session_id": self.session_id,
            "items": [item.to_dict() for item in self.items],
            "subtotal": self.subtotal,
            "item_count": self.item_count,
            "currency": self.currency,
            "status": self.status,
        }
