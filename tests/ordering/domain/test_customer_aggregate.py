"""Tests for the Customer aggregate and its saved addresses."""

import pytest
from ordering.customer.customer import AddressTag, Customer, is_valid_email, normalize_email
from ordering.customer.events import CustomerOrderRecorded
from protean.exceptions import ValidationError

ADDRESS = {
    "name": "Ada Lovelace",
    "street": "12 Analytical Row",
    "city": "London",
    "postal_code": "N1 9GU",
    "country": "GB",
}


class TestEmail:
    def test_normalize_lowercases_and_strips(self):
        assert normalize_email("  Ada@Example.COM ") == "ada@example.com"

    @pytest.mark.parametrize("email", ["ada@example.com", "a.b+c@sub.example.org"])
    def test_valid(self, email):
        assert is_valid_email(email)

    @pytest.mark.parametrize("email", ["", "ada", "ada@", "@example.com", "ada@example", "a da@example.com"])
    def test_invalid(self, email):
        assert not is_valid_email(email)


class TestRegistration:
    def test_register_normalizes_email(self):
        customer = Customer.register("Ada@Example.com", first_name="Ada")
        assert customer.email == "ada@example.com"
        assert customer.order_count == 0

    def test_register_rejects_invalid_email(self):
        with pytest.raises(ValidationError) as exc_info:
            Customer.register("not-an-email")
        assert "email" in exc_info.value.messages


class TestAddresses:
    def test_first_address_of_a_tag_becomes_default(self):
        customer = Customer.register("ada@example.com")
        address = customer.add_address(AddressTag.SHIPPING, **ADDRESS)
        assert address.is_default is True
        assert customer.default_address(AddressTag.SHIPPING) is address
        assert customer.default_address(AddressTag.BILLING) is None

    def test_second_address_is_not_default(self):
        customer = Customer.register("ada@example.com")
        customer.add_address(AddressTag.SHIPPING, **ADDRESS)
        second = customer.add_address(AddressTag.SHIPPING, **{**ADDRESS, "street": "1 Other St"})
        assert second.is_default is False

    def test_new_default_replaces_old_default(self):
        customer = Customer.register("ada@example.com")
        first = customer.add_address(AddressTag.SHIPPING, **ADDRESS)
        second = customer.add_address(AddressTag.SHIPPING, is_default=True, **{**ADDRESS, "street": "1 Other St"})
        assert first.is_default is False
        assert second.is_default is True

    def test_set_default_address(self):
        customer = Customer.register("ada@example.com")
        first = customer.add_address(AddressTag.BILLING, **ADDRESS)
        second = customer.add_address(AddressTag.BILLING, **{**ADDRESS, "street": "1 Other St"})
        customer.set_default_address(second.id)
        assert customer.default_address(AddressTag.BILLING).id == second.id
        assert first.is_default is False

    def test_set_default_unknown_address(self):
        customer = Customer.register("ada@example.com")
        with pytest.raises(ValidationError):
            customer.set_default_address("addr-404")


class TestOrderStats:
    def test_record_order(self):
        customer = Customer.register("ada@example.com")
        customer.record_order(29.99)
        customer.record_order(10.01)
        assert customer.order_count == 2
        assert customer.total_spent == 40.00
        assert isinstance(customer._events[-1], CustomerOrderRecorded)
