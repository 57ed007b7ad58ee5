"""Order update template, sent when an order changes status."""

from notifications.task import NotificationType


class OrderUpdateTemplate:
    notification_type = NotificationType.ORDER_UPDATE.value

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        customer_name = context.get("customer_name") or "there"
        status = context.get("status", "updated")
        message = context.get("status_message") or f"Your order is now {status}."

        body = [
            f"Hi {customer_name},",
            "",
            f"Order {order_number} status: {status.upper()}",
            "",
            message,
        ]
        if context.get("tracking_number"):
            body += ["", f"Tracking Number: {context['tracking_number']}"]
        if context.get("estimated_delivery"):
            body.append(f"Estimated Delivery: {context['estimated_delivery']}")

        return {"subject": f"Order Update - {order_number}", "body": "\n".join(body)}
