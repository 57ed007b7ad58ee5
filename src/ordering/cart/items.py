"""Cart line management — commands and handler.

Every command identifies the cart by its owner (customer id or guest session
id) rather than by cart id: the handler finds the owner's single active cart
or starts a new one.
"""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from ordering.cart.cart import CartOwner, ShoppingCart, normalize_variant
from ordering.cart.catalogue import ProductRecord, VariantRecord, get_catalogue, referenced_id
from ordering.config import setting
from ordering.domain import ordering
from ordering.errors import InsufficientInventoryError, ProductUnavailableError

logger = structlog.get_logger(__name__)


@ordering.command(part_of="ShoppingCart")
class AddToCart:
    customer_id = Identifier()
    session_id = String(max_length=255)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    currency = String(max_length=3)


@ordering.command(part_of="ShoppingCart")
class UpdateCartQuantity:
    customer_id = Identifier()
    session_id = String(max_length=255)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True)


@ordering.command(part_of="ShoppingCart")
class RemoveFromCart:
    customer_id = Identifier()
    session_id = String(max_length=255)
    product_id = Identifier(required=True)
    variant_id = Identifier()


@ordering.command(part_of="ShoppingCart")
class ClearCart:
    customer_id = Identifier()
    session_id = String(max_length=255)


def active_cart_for(owner: CartOwner, currency: str | None = None) -> ShoppingCart:
    """Find the owner's active cart or build a new, unsaved one."""
    repo = current_domain.repository_for(ShoppingCart)
    cart = repo.find_active_for(owner)
    if cart is None:
        cart = ShoppingCart.create(
            owner,
            currency=currency or setting("DEFAULT_CURRENCY", "USD"),
            ttl_days=int(setting("CART_TTL_DAYS", 30)),
        )
        logger.info("Started new cart", cart_id=str(cart.id), **owner.lookup)
    return cart


def check_availability(product_id, variant_id, line_quantity: int) -> tuple[ProductRecord, VariantRecord | None]:
    """Resolve the product (and variant) and reject anything that cannot be ordered.

    ``line_quantity`` is the quantity the line would hold after the change.
    """
    catalogue = get_catalogue()
    product = catalogue.get_product(str(product_id))
    if product is None or not product.orderable:
        raise ProductUnavailableError(product_id, reason="Product is not available")

    variant = None
    if variant_id:
        variant = catalogue.get_variant(str(variant_id))
        if variant is None or not variant.active:
            raise ProductUnavailableError(product_id, variant_id, reason="Product variant is not available")
        if referenced_id(variant.product) != str(product_id):
            raise ProductUnavailableError(product_id, variant_id, reason="Variant does not belong to this product")

    stock = variant if variant is not None and variant.track_inventory else product
    if stock.track_inventory and not stock.allow_backorder and line_quantity > stock.stock_quantity:
        raise InsufficientInventoryError(product_id, requested=line_quantity, available=stock.stock_quantity)

    return product, variant


@ordering.command_handler(part_of=ShoppingCart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        owner = CartOwner.from_ids(command.customer_id, command.session_id)
        variant_id = normalize_variant(command.variant_id)
        cart = active_cart_for(owner, command.currency)

        existing = cart.find_item(command.product_id, variant_id)
        line_quantity = command.quantity + (existing.quantity if existing else 0)
        product, variant = check_availability(command.product_id, variant_id, line_quantity)

        unit_price = variant.price if variant is not None and variant.price is not None else product.price
        cart.add_item(
            product_id=command.product_id,
            variant_id=variant_id,
            quantity=command.quantity,
            unit_price=unit_price,
            title=f"{product.title} - {variant.title}" if variant else product.title,
            sku=variant.sku if variant else product.sku,
        )
        current_domain.repository_for(ShoppingCart).add(cart)

        logger.info(
            "Added item to cart",
            cart_id=str(cart.id),
            product_id=str(command.product_id),
            variant_id=variant_id,
            quantity=command.quantity,
            subtotal=cart.subtotal,
        )
        return str(cart.id)

    @handle(UpdateCartQuantity)
    def update_cart_quantity(self, command):
        owner = CartOwner.from_ids(command.customer_id, command.session_id)
        cart = active_cart_for(owner)

        existing = cart.find_item(command.product_id, command.variant_id)
        if existing is not None and command.quantity > existing.quantity:
            check_availability(command.product_id, command.variant_id, command.quantity)

        cart.update_item_quantity(command.product_id, command.variant_id, command.quantity)
        current_domain.repository_for(ShoppingCart).add(cart)

        logger.info(
            "Updated cart item quantity",
            cart_id=str(cart.id),
            product_id=str(command.product_id),
            quantity=command.quantity,
            status=cart.status,
        )
        return str(cart.id)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        owner = CartOwner.from_ids(command.customer_id, command.session_id)
        cart = active_cart_for(owner)

        removed = cart.remove_item(command.product_id, command.variant_id)
        current_domain.repository_for(ShoppingCart).add(cart)
        if removed:
            logger.info("Removed item from cart", cart_id=str(cart.id), product_id=str(command.product_id))
        return str(cart.id)

    @handle(ClearCart)
    def clear_cart(self, command):
        owner = CartOwner.from_ids(command.customer_id, command.session_id)
        cart = active_cart_for(owner)
        cart.clear()
        current_domain.repository_for(ShoppingCart).add(cart)
        return str(cart.id)
