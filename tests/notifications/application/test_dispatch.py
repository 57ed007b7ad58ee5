import asyncio

import pytest
from notifications.dispatch import NotificationDeliveryError, NotificationDispatcher
from notifications.helpers import queue_admin_notification, queue_order_confirmation, queue_order_update
from notifications.queue import NotificationQueue, set_notification_queue
from notifications.task import NotificationTask, NotificationType, Priority

CONFIRMATION = {
    "to": "ada@example.com",
    "customer_name": "Ada Lovelace",
    "order_number": "ORD-1A2B3C4D5E",
    "items": [{"title": "Classic Tee", "sku": "TEE", "quantity": 2, "total_price": 20.0}],
    "subtotal": 20.0,
    "shipping_method": "standard",
    "shipping_cost": 9.99,
    "tax_amount": 0.0,
    "total": 29.99,
    "currency": "USD",
}


class TestNotificationDispatcher:
    def test_renders_and_sends(self, email):
        task = NotificationTask(type=NotificationType.ORDER_CONFIRMATION, payload=CONFIRMATION)

        result = NotificationDispatcher()(task)

        assert result["status"] == "sent"
        [sent] = email.sent_to("ada@example.com")
        assert sent["subject"] == "Order Confirmation - ORD-1A2B3C4D5E"
        assert "Total: USD 29.99" in sent["body"]

    def test_missing_recipient(self, email):
        task = NotificationTask(type=NotificationType.ORDER_CONFIRMATION, payload={"order_number": "ORD-1"})
        with pytest.raises(NotificationDeliveryError):
            NotificationDispatcher(channel=email)(task)
        assert email.attempts == 0

    def test_channel_failure_raises(self, email):
        email.configure(should_succeed=False, failure_reason="Mailbox unavailable")
        task = NotificationTask(type=NotificationType.ORDER_CONFIRMATION, payload=CONFIRMATION)

        with pytest.raises(NotificationDeliveryError) as exc_info:
            NotificationDispatcher(channel=email)(task)
        assert str(exc_info.value) == "Mailbox unavailable"


class TestQueueWithEmail:
    def test_transient_failure_is_retried(self, email, clock):
        email.fail_next()
        queue = NotificationQueue(NotificationDispatcher(channel=email), clock=clock)
        queue_order_confirmation(CONFIRMATION, queue=queue)

        asyncio.run(queue.process_due())
        assert email.sent_emails == []
        assert len(queue) == 1

        clock.advance(minutes=10)
        asyncio.run(queue.process_due())
        assert len(email.sent_to("ada@example.com")) == 1
        assert len(queue) == 0


class TestHelpers:
    def test_confirmation_is_high_priority(self, clock):
        queue = NotificationQueue(NotificationDispatcher(), clock=clock)
        set_notification_queue(queue)

        queue_order_update({"to": "ada@example.com", "order_number": "ORD-1", "status": "shipped"})
        queue_order_confirmation(CONFIRMATION)

        [first, second] = queue.due_tasks()
        assert (first.type, first.priority) == (NotificationType.ORDER_CONFIRMATION, Priority.HIGH)
        assert (second.type, second.priority) == (NotificationType.ORDER_UPDATE, Priority.NORMAL)

    def test_admin_notification_payload(self, clock):
        queue = NotificationQueue(NotificationDispatcher(), clock=clock)
        queue_admin_notification("New order ORD-1", "Order ORD-1 was placed.", to="ops@example.com", queue=queue)

        [task] = queue.due_tasks()
        assert task.type == NotificationType.ADMIN_NOTIFICATION
        assert task.payload == {
            "to": "ops@example.com",
            "subject": "New order ORD-1",
            "message": "Order ORD-1 was placed.",
        }
