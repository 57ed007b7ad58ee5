"""Channel adapter registry for outbound notifications.

Email is the only channel the delivery queue dispatches through. The fake
adapter is used until a real provider is wired in.
"""

EMAIL = "email"

_channel_instances: dict[str, object] = {}


def get_channel(channel_type: str = EMAIL):
    """Return the configured channel adapter (singleton per channel type)."""
    if channel_type not in _channel_instances:
        if channel_type == EMAIL:
            from notifications.channel.fake_email import FakeEmailAdapter

            _channel_instances[channel_type] = FakeEmailAdapter()
        else:
            raise ValueError(f"Unknown channel type: {channel_type}")

    return _channel_instances[channel_type]


def set_channel(channel_type: str, adapter) -> None:
    _channel_instances[channel_type] = adapter


def reset_channels():
    """Reset all channel singletons (useful for testing)."""
    _channel_instances.clear()
