"""Integration tests for the cart endpoints via TestClient."""

import pytest
from ordering.cart.cart import CartStatus, ShoppingCart
from protean import current_domain

pytestmark = pytest.mark.usefixtures("catalogue")


def _add_item(client, product_id="prod-tee", quantity=1, session_id="sess-api", **extra):
    return client.post(
        "/cart/items",
        json={"session_id": session_id, "product_id": product_id, "quantity": quantity, **extra},
    )


class TestCartEndpoints:
    def test_empty_cart_for_unknown_owner(self, client):
        response = client.get("/cart", params={"session_id": "sess-nobody"})
        assert response.status_code == 200
        body = response.json()
        assert body["cart_id"] is None
        assert body["items"] == []
        assert body["subtotal"] == 0.0

    def test_add_item_returns_the_cart(self, client):
        response = _add_item(client, quantity=2)
        assert response.status_code == 200
        body = response.json()
        assert body["item_count"] == 2
        assert body["subtotal"] == 20.0
        assert body["items"][0]["title"] == "Classic Tee"

        fetched = client.get("/cart", params={"session_id": "sess-api"}).json()
        assert fetched["cart_id"] == body["cart_id"]

    def test_add_variant_uses_variant_price(self, client):
        body = _add_item(client, variant_id="var-tee-xl").json()
        assert body["items"][0]["variant_id"] == "var-tee-xl"
        assert body["items"][0]["unit_price"] == 12.0

    def test_unknown_product_is_a_bad_request(self, client):
        response = _add_item(client, product_id="prod-nope")
        assert response.status_code == 400

    def test_insufficient_stock_is_a_bad_request(self, client):
        response = _add_item(client, product_id="prod-mug", quantity=6)
        assert response.status_code == 400

    def test_owner_is_required(self, client):
        response = client.post("/cart/items", json={"product_id": "prod-tee", "quantity": 1})
        assert response.status_code == 400

    def test_zero_quantity_is_rejected_by_schema(self, client):
        response = _add_item(client, quantity=0)
        assert response.status_code == 422

    def test_update_quantity(self, client):
        _add_item(client)
        response = client.put(
            "/cart/items", json={"session_id": "sess-api", "product_id": "prod-tee", "quantity": 4}
        )
        assert response.status_code == 200
        assert response.json()["item_count"] == 4

    def test_remove_last_item_abandons_the_cart(self, client):
        cart_id = _add_item(client).json()["cart_id"]
        response = client.delete("/cart/items", params={"session_id": "sess-api", "product_id": "prod-tee"})
        assert response.status_code == 200
        assert current_domain.repository_for(ShoppingCart).get(cart_id).status == CartStatus.ABANDONED.value

    def test_clear_cart(self, client):
        _add_item(client, quantity=3)
        response = client.delete("/cart", params={"session_id": "sess-api"})
        assert response.status_code == 200
        body = response.json()
        assert body["items"] == []
        assert body["status"] == "active"

    def test_merge_guest_cart(self, client):
        _add_item(client, quantity=2, session_id="sess-guest")
        response = client.post("/cart/merge", json={"customer_id": "cust-api", "session_id": "sess-guest"})
        assert response.status_code == 200
        assert response.json()["item_count"] == 2

        fetched = client.get("/cart", params={"customer_id": "cust-api"}).json()
        assert fetched["item_count"] == 2
