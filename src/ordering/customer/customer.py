"""Customer aggregate — a purchaser identified by email.

Customers are created lazily by the checkout saga the first time an email
is seen and reused afterwards. Saved addresses are tagged shipping or
billing, with at most one default per tag.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Integer, String

from ordering.customer.events import CustomerAddressSaved, CustomerOrderRecorded, CustomerRegistered
from ordering.domain import ordering


class AddressTag(Enum):
    SHIPPING = "shipping"
    BILLING = "billing"


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    if not email or any(ch.isspace() for ch in email) or email.count("@") != 1:
        return False
    local_part, domain_part = email.split("@", 1)
    if not local_part or not domain_part or "." not in domain_part:
        return False
    return not (domain_part.startswith(".") or domain_part.endswith(".") or ".." in domain_part)


@ordering.entity(part_of="Customer")
class SavedAddress:
    tag = String(choices=AddressTag, required=True)
    name = String(max_length=200)
    street = String(required=True, max_length=255)
    street2 = String(max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=2)
    phone = String(max_length=30)
    is_default = Boolean(default=False)


@ordering.aggregate
class Customer:
    email = String(required=True, max_length=254, unique=True)
    first_name = String(max_length=100)
    last_name = String(max_length=100)
    phone = String(max_length=30)
    addresses = HasMany(SavedAddress)
    order_count = Integer(default=0)
    total_spent = Float(default=0.0)
    created_at = DateTime()

    @invariant.post
    def email_must_be_valid(self):
        if not is_valid_email(self.email):
            raise ValidationError({"email": [f"Invalid email address: {self.email!r}"]})

    @invariant.post
    def at_most_one_default_address_per_tag(self):
        for tag in AddressTag:
            defaults = [a for a in self.addresses if a.tag == tag.value and a.is_default]
            if len(defaults) > 1:
                raise ValidationError({"addresses": [f"Only one default {tag.value} address is allowed"]})

    @classmethod
    def register(cls, email, first_name=None, last_name=None, phone=None):
        now = datetime.now(UTC)
        customer = cls(
            email=normalize_email(email),
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            order_count=0,
            total_spent=0.0,
            created_at=now,
        )
        customer.raise_(CustomerRegistered(customer_id=str(customer.id), email=customer.email, registered_at=now))
        return customer

    def default_address(self, tag: AddressTag) -> SavedAddress | None:
        return next((a for a in self.addresses if a.tag == tag.value and a.is_default), None)

    def add_address(self, tag: AddressTag, is_default=False, **fields) -> SavedAddress:
        # The first address of a tag becomes its default
        if self.default_address(tag) is None:
            is_default = True

        with atomic_change(self):
            if is_default:
                for address in self.addresses:
                    if address.tag == tag.value and address.is_default:
                        address.is_default = False

            address = SavedAddress(tag=tag.value, is_default=is_default, **fields)
            self.add_addresses(address)

        self.raise_(
            CustomerAddressSaved(
                customer_id=str(self.id),
                address_id=str(address.id),
                tag=tag.value,
                is_default=str(is_default),
            )
        )
        return address

    def set_default_address(self, address_id) -> None:
        address = next((a for a in self.addresses if str(a.id) == str(address_id)), None)
        if address is None:
            raise ValidationError({"addresses": [f"Address {address_id} not found"]})

        with atomic_change(self):
            for other in self.addresses:
                if other.tag == address.tag and other.is_default:
                    other.is_default = False
            address.is_default = True

    def record_order(self, order_total: float) -> None:
        self.order_count = (self.order_count or 0) + 1
        self.total_spent = round((self.total_spent or 0.0) + order_total, 2)
        self.raise_(
            CustomerOrderRecorded(
                customer_id=str(self.id),
                order_count=self.order_count,
                total_spent=self.total_spent,
            )
        )
