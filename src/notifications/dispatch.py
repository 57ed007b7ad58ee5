"""Renders a queued task and hands it to the email channel.

The dispatcher raises on any failure so the queue can schedule a retry.
"""

import structlog

from notifications.channel import EMAIL, get_channel
from notifications.task import NotificationTask
from notifications.templates import get_template

logger = structlog.get_logger(__name__)


class NotificationDeliveryError(Exception):
    """The channel refused or failed to deliver a rendered message."""


class NotificationDispatcher:
    def __init__(self, channel=None):
        self._channel = channel

    @property
    def channel(self):
        return self._channel if self._channel is not None else get_channel(EMAIL)

    def __call__(self, task: NotificationTask) -> dict:
        recipient = task.payload.get("to")
        if not recipient:
            raise NotificationDeliveryError(f"Notification {task.id} has no recipient")

        content = get_template(task.type.value).render(task.payload)
        result = self.channel.send(to=recipient, subject=content["subject"], body=content["body"])
        if result.get("status") != "sent":
            raise NotificationDeliveryError(result.get("error") or "Unknown dispatch error")

        logger.info(
            "Sent notification email",
            task_id=task.id,
            type=task.type.value,
            message_id=result.get("message_id"),
        )
        return result
