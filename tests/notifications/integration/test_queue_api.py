"""Integration tests for the notification queue admin endpoints."""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from notifications.api import notifications_router
from notifications.dispatch import NotificationDispatcher
from notifications.queue import NotificationQueue, set_notification_queue
from notifications.task import NotificationType


@pytest.fixture()
def queue(email, clock):
    queue = NotificationQueue(NotificationDispatcher(channel=email), clock=clock)
    set_notification_queue(queue)
    return queue


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(notifications_router)
    return TestClient(app)


def test_queue_status(client, queue):
    queue.enqueue(NotificationType.ORDER_UPDATE, {"to": "ada@example.com", "order_number": "ORD-1"})

    response = client.get("/notifications/queue")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["tasks"][0]["type"] == "order_update"
    assert body["tasks"][0]["state"] == "pending"


def test_retry_backed_off_tasks(client, queue, email):
    email.fail_next()
    queue.enqueue(NotificationType.ORDER_UPDATE, {"to": "ada@example.com", "order_number": "ORD-1"})
    asyncio.run(queue.process_due())

    response = client.post("/notifications/queue/retry")

    assert response.json() == {"rescheduled": 1}
    assert len(queue.due_tasks()) == 1


def test_clear_queue(client, queue):
    queue.enqueue(NotificationType.ORDER_UPDATE, {"to": "ada@example.com"})
    queue.enqueue(NotificationType.ORDER_UPDATE, {"to": "grace@example.com"})

    response = client.delete("/notifications/queue")

    assert response.json() == {"removed": 2}
    assert len(queue) == 0
