import pytest
from notifications.channel import EMAIL, reset_channels, set_channel
from notifications.channel.fake_email import FakeEmailAdapter
from notifications.dispatch import NotificationDispatcher
from notifications.queue import NotificationQueue, reset_notification_queue, set_notification_queue
from ordering.cart.catalogue import InMemoryCatalogue, Reference, reset_catalogue, set_catalogue
from ordering.order.pricing import reset_pricing_strategy
from payments.gateway import reset_gateway, set_gateway
from payments.gateway.fake_adapter import FakeGateway
from protean import current_domain
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def _reset_collaborators():
    yield
    reset_gateway()
    reset_catalogue()
    reset_pricing_strategy()
    reset_notification_queue()
    reset_channels()


@pytest.fixture()
def catalogue():
    """A small catalogue: a tee with sized variants, a stocked mug, and an archived hat."""
    catalogue = InMemoryCatalogue()
    catalogue.add_product("prod-tee", "Classic Tee", 10.00, sku="TEE")
    catalogue.add_variant("var-tee-m", Reference("prod-tee"), "Medium", sku="TEE-M")
    catalogue.add_variant("var-tee-xl", Reference("prod-tee"), "XL", sku="TEE-XL", price=12.00)
    catalogue.add_product("prod-mug", "Mug", 5.00, sku="MUG", track_inventory=True, stock_quantity=5)
    catalogue.add_product("prod-hat", "Hat", 15.00, sku="HAT", status="archived")
    set_catalogue(catalogue)
    return catalogue


@pytest.fixture()
def gateway():
    gateway = FakeGateway()
    set_gateway(gateway)
    return gateway


@pytest.fixture()
def email():
    adapter = FakeEmailAdapter()
    set_channel(EMAIL, adapter)
    return adapter


@pytest.fixture()
def queue(email):
    queue = NotificationQueue(NotificationDispatcher(channel=email))
    set_notification_queue(queue)
    return queue
