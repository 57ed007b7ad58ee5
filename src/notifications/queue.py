"""Notification delivery queue.

An in-process, priority-ordered retry queue for outbound messages. Producers
(the checkout saga, order status updates) call ``enqueue`` and return
immediately; a background loop started with ``start()`` wakes every
``poll_interval`` seconds and dispatches due tasks with bounded concurrency.

A task is visible to the dispatcher only when it is due, has attempts left,
and is not already being dispatched. Failures are retried with exponential
backoff (``base_delay * 2 ** attempts``); a task that exhausts its attempts is
dropped and logged as a permanent failure. Delivery is best-effort: nothing
is persisted beyond the process.
"""

import asyncio
import contextlib
import inspect
import itertools
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from notifications.task import NotificationTask, NotificationType, Priority

logger = structlog.get_logger(__name__)

Dispatcher = Callable[[NotificationTask], Any]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class NotificationQueue:
    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        poll_interval: float = 5.0,
        max_concurrency: int = 3,
        max_attempts: int = 3,
        base_delay: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._dispatcher = dispatcher
        self.poll_interval = poll_interval
        self.max_concurrency = max_concurrency
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._clock = clock

        self._lock = threading.Lock()
        self._tasks: dict[str, NotificationTask] = {}
        self._in_flight: set[str] = set()
        self._sequence = itertools.count()
        self._loop_task: asyncio.Task | None = None

    # -------------------------------------------------------------------
    # Producer side
    # -------------------------------------------------------------------
    def enqueue(
        self,
        type: NotificationType | str,
        payload: dict,
        priority: Priority | str = Priority.NORMAL,
        scheduled_for: datetime | None = None,
    ) -> str:
        """Add a task and return its id. Safe to call from any thread."""
        task = NotificationTask(
            type=NotificationType(type),
            payload=dict(payload),
            priority=Priority(priority),
            max_attempts=self.max_attempts,
            scheduled_for=scheduled_for,
            created_at=self._clock(),
        )
        with self._lock:
            task.sequence = next(self._sequence)
            self._tasks[task.id] = task

        logger.info(
            "Queued notification",
            task_id=task.id,
            type=task.type.value,
            priority=task.priority.value,
            scheduled_for=scheduled_for.isoformat() if scheduled_for else None,
        )
        return task.id

    # -------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------
    def _visible(self, now: datetime) -> list[NotificationTask]:
        visible = [
            task
            for task in self._tasks.values()
            if task.id not in self._in_flight and not task.exhausted and task.is_due(now)
        ]
        return sorted(visible, key=lambda task: task.sort_key)

    def due_tasks(self, now: datetime | None = None) -> list[NotificationTask]:
        """Tasks the dispatcher would pick up at ``now``, in dispatch order."""
        with self._lock:
            return self._visible(now or self._clock())

    def _claim(self, now: datetime) -> list[NotificationTask]:
        with self._lock:
            capacity = self.max_concurrency - len(self._in_flight)
            if capacity <= 0:
                return []
            batch = self._visible(now)[:capacity]
            self._in_flight.update(task.id for task in batch)
            return batch

    # -------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------
    async def process_due(self, now: datetime | None = None) -> int:
        """Dispatch the currently due tasks, at most ``max_concurrency`` at a time.

        Returns the number of tasks attempted.
        """
        now = now or self._clock()
        batch = self._claim(now)
        if not batch:
            return 0

        await asyncio.gather(*(self._attempt(task, now) for task in batch))
        return len(batch)

    async def _deliver(self, task: NotificationTask) -> None:
        if inspect.iscoroutinefunction(self._dispatcher) or inspect.iscoroutinefunction(
            getattr(self._dispatcher, "__call__", None)
        ):
            await self._dispatcher(task)
        else:
            await asyncio.to_thread(self._dispatcher, task)

    async def _attempt(self, task: NotificationTask, now: datetime) -> None:
        try:
            await self._deliver(task)
        except Exception as exc:
            self._record_failure(task, exc, now)
        else:
            with self._lock:
                self._tasks.pop(task.id, None)
            logger.info("Delivered notification", task_id=task.id, type=task.type.value, attempts=task.attempts + 1)
        finally:
            with self._lock:
                self._in_flight.discard(task.id)

    def _record_failure(self, task: NotificationTask, exc: Exception, now: datetime) -> None:
        with self._lock:
            task.attempts += 1
            task.last_error = str(exc) or exc.__class__.__name__
            if task.exhausted:
                self._tasks.pop(task.id, None)
            else:
                task.scheduled_for = now + self.base_delay * (2**task.attempts)

        if task.exhausted:
            logger.error(
                "Notification permanently failed, dropping",
                task_id=task.id,
                type=task.type.value,
                attempts=task.attempts,
                error=task.last_error,
            )
        else:
            logger.warning(
                "Notification delivery failed, will retry",
                task_id=task.id,
                type=task.type.value,
                attempts=task.attempts,
                retry_at=task.scheduled_for.isoformat(),
                error=task.last_error,
            )

    # -------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def _run_forever(self) -> None:
        while True:
            try:
                await self.process_due()
            except Exception:
                logger.exception("Notification queue tick failed")
            await asyncio.sleep(self.poll_interval)

    async def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._run_forever(), name="notification-queue")
        logger.info("Notification queue started", poll_interval=self.poll_interval)

    async def stop(self) -> None:
        task, self._loop_task = self._loop_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Notification queue stopped", pending=len(self._tasks))

    # -------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------
    def status(self, now: datetime | None = None) -> dict:
        now = now or self._clock()
        with self._lock:
            tasks = sorted(self._tasks.values(), key=lambda task: task.sort_key)
            in_flight = set(self._in_flight)

        def state(task: NotificationTask) -> str:
            if task.id in in_flight:
                return "processing"
            return "pending" if task.is_due(now) else "scheduled"

        return {
            "total": len(tasks),
            "pending": sum(1 for task in tasks if task.id not in in_flight),
            "processing": len(in_flight),
            "running": self.running,
            "tasks": [
                {
                    "id": task.id,
                    "type": task.type.value,
                    "priority": task.priority.value,
                    "attempts": task.attempts,
                    "max_attempts": task.max_attempts,
                    "state": state(task),
                    "scheduled_for": task.scheduled_for.isoformat() if task.scheduled_for else None,
                    "last_error": task.last_error,
                }
                for task in tasks
            ],
        }

    def retry_now(self) -> int:
        """Make every backed-off task due immediately. Returns how many were rescheduled."""
        with self._lock:
            waiting = [task for task in self._tasks.values() if task.scheduled_for is not None and task.attempts]
            for task in waiting:
                task.scheduled_for = None
        return len(waiting)

    def clear(self) -> int:
        """Drop every task that is not currently being dispatched."""
        with self._lock:
            removable = [task_id for task_id in self._tasks if task_id not in self._in_flight]
            for task_id in removable:
                del self._tasks[task_id]
        logger.info("Cleared notification queue", removed=len(removable))
        return len(removable)

    def __len__(self) -> int:
        return len(self._tasks)


_default_queue: NotificationQueue | None = None


def get_notification_queue() -> NotificationQueue:
    """Process-wide queue used by the application. Tests build their own instances."""
    global _default_queue
    if _default_queue is None:
        from notifications.dispatch import NotificationDispatcher

        _default_queue = NotificationQueue(NotificationDispatcher())
    return _default_queue


def set_notification_queue(queue: NotificationQueue) -> None:
    global _default_queue
    _default_queue = queue


def reset_notification_queue() -> None:
    global _default_queue
    _default_queue = None
