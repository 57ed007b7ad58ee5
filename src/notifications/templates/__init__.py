"""Template registry: maps NotificationType values to template classes."""

from notifications.task import NotificationType
from notifications.templates.admin_notification import AdminNotificationTemplate
from notifications.templates.order_confirmation import OrderConfirmationTemplate
from notifications.templates.order_update import OrderUpdateTemplate

TEMPLATE_REGISTRY: dict[str, type] = {
    NotificationType.ORDER_CONFIRMATION.value: OrderConfirmationTemplate,
    NotificationType.ORDER_UPDATE.value: OrderUpdateTemplate,
    NotificationType.ADMIN_NOTIFICATION.value: AdminNotificationTemplate,
}


def get_template(notification_type: str):
    """Look up a template class by notification type string."""
    template_cls = TEMPLATE_REGISTRY.get(notification_type)
    if template_cls is None:
        raise ValueError(f"No template registered for notification type: {notification_type}")
    return template_cls
