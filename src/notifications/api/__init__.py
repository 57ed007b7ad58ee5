"""Notifications API package."""

from notifications.api.routes import notifications_router

__all__ = ["notifications_router"]
