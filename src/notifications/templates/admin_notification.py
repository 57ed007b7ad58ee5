"""Admin notification template, for operational messages to store staff."""

from notifications.task import NotificationType


class AdminNotificationTemplate:
    notification_type = NotificationType.ADMIN_NOTIFICATION.value

    @staticmethod
    def render(context: dict) -> dict:
        subject = context.get("subject", "Notification")
        message = context.get("message", "")
        return {
            "subject": f"Store Admin: {subject}",
            "body": f"{message}\n\nThis is an automated message from the store admin system.",
        }
