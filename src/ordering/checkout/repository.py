"""Repository for the Checkout aggregate."""

import threading

from ordering.checkout.checkout import Checkout, CheckoutState
from ordering.domain import ordering
from ordering.errors import CartAlreadyConvertedError

# Serializes payment confirmation writes across threads of this process
_confirm_lock = threading.Lock()


@ordering.repository(part_of=Checkout)
class CheckoutRepository:
    def find_by_payment_intent(self, payment_intent_id: str) -> Checkout | None:
        checkouts = self._dao.query.filter(payment_intent_id=payment_intent_id).all().items
        return checkouts[0] if checkouts else None

    def latest_for_cart(self, cart_id) -> Checkout | None:
        checkouts = self._dao.query.filter(cart_id=cart_id).order_by("-attempt").all().items
        return checkouts[0] if checkouts else None

    def confirm_payment(self, checkout_id, payment_status: str) -> Checkout:
        """Reload the checkout and record a confirmed payment on it.

        A checkout that already moved past confirmation is never written
        back; a checkout already confirmed is returned as stored.
        """
        with _confirm_lock:
            checkout = self.get(checkout_id)
            if checkout.has_reached(CheckoutState.ORDER_CREATED):
                raise CartAlreadyConvertedError(checkout.cart_id)
            if checkout.current_state == CheckoutState.PAYMENT_INTENT_CREATED:
                checkout.confirm_payment(payment_status)
                self.add(checkout)
            return checkout
