"""Notification task — a unit of outbound message work held by the queue."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4


class NotificationType(Enum):
    ORDER_CONFIRMATION = "order_confirmation"
    ORDER_UPDATE = "order_update"
    ADMIN_NOTIFICATION = "admin_notification"


class Priority(Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.NORMAL: 1, Priority.LOW: 2}


def new_task_id() -> str:
    return f"notif_{uuid4().hex[:16]}"


@dataclass
class NotificationTask:
    type: NotificationType
    payload: dict[str, Any]
    priority: Priority = Priority.NORMAL
    max_attempts: int = 3
    attempts: int = 0
    scheduled_for: datetime | None = None
    last_error: str | None = None
    id: str = field(default_factory=new_task_id)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    sequence: int = 0

    def is_due(self, now: datetime) -> bool:
        return self.scheduled_for is None or self.scheduled_for <= now

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.priority.rank, self.sequence)
