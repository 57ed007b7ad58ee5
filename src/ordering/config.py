"""Access to the ``[custom]`` settings declared in ``domain.toml``."""

from typing import Any

from protean.utils.globals import current_domain


def setting(name: str, default: Any = None) -> Any:
    """Return a custom domain setting, falling back to ``default``.

    Must be called inside an active domain context.
    """
    custom = current_domain.config.get("custom") or {}
    value = custom.get(name)
    return default if value in (None, "") else value
