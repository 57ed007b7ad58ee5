from datetime import UTC, datetime, timedelta

import pytest
from notifications.channel import EMAIL, reset_channels, set_channel
from notifications.channel.fake_email import FakeEmailAdapter
from notifications.queue import reset_notification_queue


class FakeClock:
    """Settable clock for driving the queue's scheduling."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def _reset_notifications():
    yield
    reset_notification_queue()
    reset_channels()


@pytest.fixture()
def clock():
    return FakeClock(datetime(2026, 10, 19, 12, 0, tzinfo=UTC))


@pytest.fixture()
def email():
    adapter = FakeEmailAdapter()
    set_channel(EMAIL, adapter)
    return adapter
