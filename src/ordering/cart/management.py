"""Cart management — guest merge, abandonment and expiry.

Also hosts the clear that the checkout saga issues against a cart it has
already converted, which addresses the cart by id rather than by owner.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from ordering.cart.cart import CartOwner, ShoppingCart
from ordering.domain import ordering

logger = structlog.get_logger(__name__)


@ordering.command(part_of="ShoppingCart")
class MergeGuestCart:
    """Fold a guest session's cart into the customer's cart after sign-in."""

    customer_id = Identifier(required=True)
    session_id = String(required=True, max_length=255)


@ordering.command(part_of="ShoppingCart")
class AbandonCart:
    cart_id = Identifier(required=True)
    reason = String(max_length=50, default="abandoned")


@ordering.command(part_of="ShoppingCart")
class ExpireCarts:
    """Abandon every active cart whose ``expires_at`` has passed."""

    as_of = DateTime()


@ordering.command(part_of="ShoppingCart")
class ClearConvertedCart:
    cart_id = Identifier(required=True)


@ordering.command_handler(part_of=ShoppingCart)
class ManageCartHandler:
    @handle(MergeGuestCart)
    def merge_guest_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        guest_cart = repo.find_active_for(CartOwner.from_ids(session_id=command.session_id))
        customer_cart = repo.find_active_for(CartOwner.from_ids(customer_id=command.customer_id))

        if guest_cart is None:
            return str(customer_cart.id) if customer_cart else None

        if customer_cart is None:
            guest_cart.assign_to_customer(command.customer_id)
            repo.add(guest_cart)
            logger.info(
                "Guest cart handed over to customer",
                cart_id=str(guest_cart.id),
                customer_id=command.customer_id,
            )
            return str(guest_cart.id)

        merged = customer_cart.merge_from(guest_cart)
        repo.add(customer_cart)
        repo.add(guest_cart)
        logger.info(
            "Merged guest cart into customer cart",
            cart_id=str(customer_cart.id),
            source_cart_id=str(guest_cart.id),
            items_merged=merged,
        )
        return str(customer_cart.id)

    @handle(AbandonCart)
    def abandon_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        cart.abandon(reason=command.reason)
        repo.add(cart)
        return str(cart.id)

    @handle(ExpireCarts)
    def expire_carts(self, command):
        as_of = command.as_of or datetime.now(UTC)
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=UTC)

        repo = current_domain.repository_for(ShoppingCart)
        expired = repo.find_expired(as_of)
        for cart in expired:
            cart.abandon(reason="expired")
            repo.add(cart)

        logger.info("Expired carts abandoned", count=len(expired), as_of=as_of.isoformat())
        return len(expired)

    @handle(ClearConvertedCart)
    def clear_converted_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        removed = cart.clear()
        repo.add(cart)
        return removed
