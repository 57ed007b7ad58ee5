"""Storefront API package."""

from ordering.api.errors import register_checkout_exception_handlers
from ordering.api.routes import cart_router, checkout_router, order_router

__all__ = ["cart_router", "checkout_router", "order_router", "register_checkout_exception_handlers"]
