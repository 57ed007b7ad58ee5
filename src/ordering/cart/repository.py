"""Repository for the ShoppingCart aggregate."""

import threading
from datetime import UTC, datetime

import structlog

from ordering.cart.cart import CartOwner, CartStatus, ShoppingCart
from ordering.domain import ordering
from ordering.errors import CartIntegrityError

logger = structlog.get_logger(__name__)

# Serializes status compare-and-set across threads of this process
_status_lock = threading.Lock()


@ordering.repository(part_of=ShoppingCart)
class ShoppingCartRepository:
    def find_active_for(self, owner: CartOwner) -> ShoppingCart | None:
        """Return the owner's single active cart, or None.

        More than one active cart for one owner is a data-integrity violation.
        """
        carts = self._dao.query.filter(status=CartStatus.ACTIVE.value, **owner.lookup).all().items
        if len(carts) > 1:
            logger.error(
                "Found more than one active cart for owner",
                owner=owner.lookup,
                cart_ids=[str(cart.id) for cart in carts],
            )
            raise CartIntegrityError("More than one active cart for owner", owner=owner.lookup)
        return carts[0] if carts else None

    def find_expired(self, now: datetime | None = None) -> list[ShoppingCart]:
        now = now or datetime.now(UTC)
        carts = self._dao.query.filter(status=CartStatus.ACTIVE.value).all().items
        return [cart for cart in carts if cart.is_expired(now)]

    def compare_and_set_status(
        self,
        cart_id: str,
        expected: CartStatus,
        new: CartStatus,
        reason: str | None = None,
    ) -> bool:
        """Atomically move a cart from ``expected`` to ``new``.

        Returns False, writing nothing, when the stored status is not ``expected``.
        """
        with _status_lock:
            cart = self.get(cart_id)
            if cart.status != expected.value:
                logger.info(
                    "Cart status compare-and-set rejected",
                    cart_id=cart_id,
                    expected=expected.value,
                    actual=cart.status,
                )
                return False
            cart.change_status(new, reason=reason)
            self.add(cart)
            return True
