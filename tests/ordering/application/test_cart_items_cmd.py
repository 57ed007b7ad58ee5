"""Application tests for cart line commands against the catalogue port."""

import pytest
from ordering.cart.cart import CartOwner, CartStatus, ShoppingCart
from ordering.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartQuantity
from ordering.errors import CartIntegrityError, InsufficientInventoryError, ProductUnavailableError
from protean import current_domain
from protean.exceptions import ValidationError


def _add(product_id="prod-tee", variant_id=None, quantity=1, **owner):
    owner = owner or {"session_id": "sess-001"}
    return current_domain.process(
        AddToCart(product_id=product_id, variant_id=variant_id, quantity=quantity, **owner),
        asynchronous=False,
    )


def _cart(cart_id):
    return current_domain.repository_for(ShoppingCart).get(cart_id)


@pytest.mark.usefixtures("catalogue")
class TestAddToCartCommand:
    def test_first_add_creates_cart(self):
        cart_id = _add(quantity=2)
        cart = _cart(cart_id)
        assert cart.session_id == "sess-001"
        assert cart.status == CartStatus.ACTIVE.value
        assert cart.subtotal == 20.00
        assert cart.items[0].title == "Classic Tee"

    def test_second_add_reuses_active_cart(self):
        first = _add()
        second = _add(product_id="prod-mug")
        assert first == second

    def test_variant_price_and_title(self):
        cart = _cart(_add(variant_id="var-tee-xl"))
        assert cart.items[0].unit_price == 12.00
        assert cart.items[0].title == "Classic Tee - XL"
        assert cart.items[0].sku == "TEE-XL"

    def test_variant_without_price_inherits_product_price(self):
        cart = _cart(_add(variant_id="var-tee-m"))
        assert cart.items[0].unit_price == 10.00

    def test_repeated_add_keeps_snapshot_after_price_change(self, catalogue):
        cart_id = _add()
        catalogue.update_product("prod-tee", price=99.00)
        _add()
        cart = _cart(cart_id)
        assert cart.items[0].quantity == 2
        assert cart.items[0].unit_price == 10.00

    def test_unknown_product(self):
        with pytest.raises(ProductUnavailableError) as exc_info:
            _add(product_id="prod-404")
        assert "product_id" in exc_info.value.messages

    def test_archived_product(self):
        with pytest.raises(ProductUnavailableError):
            _add(product_id="prod-hat")

    def test_variant_of_another_product(self, catalogue):
        catalogue.add_product("prod-cap", "Cap", 8.00)
        with pytest.raises(ProductUnavailableError) as exc_info:
            _add(product_id="prod-cap", variant_id="var-tee-m")
        assert "variant_id" in exc_info.value.messages

    def test_stock_limits_the_resulting_line(self):
        _add(product_id="prod-mug", quantity=4)
        with pytest.raises(InsufficientInventoryError):
            _add(product_id="prod-mug", quantity=2)

    def test_stock_is_never_clamped(self):
        with pytest.raises(InsufficientInventoryError):
            _add(product_id="prod-mug", quantity=6)
        owner = CartOwner.from_ids(session_id="sess-001")
        assert current_domain.repository_for(ShoppingCart).find_active_for(owner) is None

    def test_backorder_ignores_stock(self, catalogue):
        catalogue.update_product("prod-mug", allow_backorder=True)
        cart = _cart(_add(product_id="prod-mug", quantity=9))
        assert cart.item_count == 9

    def test_zero_quantity_is_rejected(self):
        with pytest.raises(ValidationError):
            _add(quantity=0)

    def test_missing_owner_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            current_domain.process(AddToCart(product_id="prod-tee", quantity=1), asynchronous=False)
        assert "owner" in exc_info.value.messages


@pytest.mark.usefixtures("catalogue")
class TestUpdateCartQuantityCommand:
    def test_update_persists(self):
        cart_id = _add()
        current_domain.process(
            UpdateCartQuantity(session_id="sess-001", product_id="prod-tee", quantity=3),
            asynchronous=False,
        )
        cart = _cart(cart_id)
        assert cart.items[0].quantity == 3
        assert cart.subtotal == 30.00

    def test_increase_checks_stock(self):
        _add(product_id="prod-mug", quantity=2)
        with pytest.raises(InsufficientInventoryError):
            current_domain.process(
                UpdateCartQuantity(session_id="sess-001", product_id="prod-mug", quantity=6),
                asynchronous=False,
            )

    def test_zero_removes_line_and_recomputes(self):
        cart_id = _add()
        _add(product_id="prod-mug", quantity=2)
        current_domain.process(
            UpdateCartQuantity(session_id="sess-001", product_id="prod-tee", quantity=0),
            asynchronous=False,
        )
        cart = _cart(cart_id)
        assert len(cart.items) == 1
        assert cart.item_count == 2
        assert cart.subtotal == 10.00

    def test_zero_on_last_line_abandons_cart(self):
        cart_id = _add()
        current_domain.process(
            UpdateCartQuantity(session_id="sess-001", product_id="prod-tee", quantity=0),
            asynchronous=False,
        )
        assert _cart(cart_id).status == CartStatus.ABANDONED.value

    def test_negative_quantity(self):
        _add()
        with pytest.raises(ValidationError) as exc_info:
            current_domain.process(
                UpdateCartQuantity(session_id="sess-001", product_id="prod-tee", quantity=-2),
                asynchronous=False,
            )
        assert "quantity" in exc_info.value.messages


@pytest.mark.usefixtures("catalogue")
class TestRemoveAndClearCommands:
    def test_remove_absent_item_leaves_cart_unchanged(self):
        cart_id = _add(quantity=2)
        current_domain.process(RemoveFromCart(session_id="sess-001", product_id="prod-mug"), asynchronous=False)
        cart = _cart(cart_id)
        assert len(cart.items) == 1
        assert cart.subtotal == 20.00
        assert cart.status == CartStatus.ACTIVE.value

    def test_remove_last_item_abandons_cart(self):
        cart_id = _add()
        current_domain.process(RemoveFromCart(session_id="sess-001", product_id="prod-tee"), asynchronous=False)
        cart = _cart(cart_id)
        assert len(cart.items) == 0
        assert cart.status == CartStatus.ABANDONED.value

    def test_clear_keeps_cart_active(self):
        cart_id = _add()
        _add(product_id="prod-mug")
        current_domain.process(ClearCart(session_id="sess-001"), asynchronous=False)
        cart = _cart(cart_id)
        assert len(cart.items) == 0
        assert cart.subtotal == 0.0
        assert cart.status == CartStatus.ACTIVE.value


class TestActiveCartIntegrity:
    def test_two_active_carts_for_one_owner(self, catalogue):
        repo = current_domain.repository_for(ShoppingCart)
        owner = CartOwner.from_ids(customer_id="cust-dup")
        repo.add(ShoppingCart.create(owner))
        repo.add(ShoppingCart.create(owner))

        with pytest.raises(CartIntegrityError):
            _add(customer_id="cust-dup")
