"""Enqueue helpers for the notification types the storefront sends."""

from notifications.queue import NotificationQueue, get_notification_queue
from notifications.task import NotificationType, Priority


def _queue(queue: NotificationQueue | None) -> NotificationQueue:
    return queue if queue is not None else get_notification_queue()


def queue_order_confirmation(payload: dict, queue: NotificationQueue | None = None) -> str:
    return _queue(queue).enqueue(NotificationType.ORDER_CONFIRMATION, payload, Priority.HIGH)


def queue_order_update(payload: dict, queue: NotificationQueue | None = None) -> str:
    return _queue(queue).enqueue(NotificationType.ORDER_UPDATE, payload, Priority.NORMAL)


def queue_admin_notification(
    subject: str,
    message: str,
    to: str,
    queue: NotificationQueue | None = None,
) -> str:
    payload = {"to": to, "subject": subject, "message": message}
    return _queue(queue).enqueue(NotificationType.ADMIN_NOTIFICATION, payload, Priority.HIGH)
