"""FastAPI routes for inspecting and administering the notification queue."""

from fastapi import APIRouter

from notifications.queue import get_notification_queue

notifications_router = APIRouter(prefix="/notifications", tags=["notifications"])


@notifications_router.get("/queue")
async def queue_status() -> dict:
    return get_notification_queue().status()


@notifications_router.post("/queue/retry")
async def retry_failed() -> dict:
    return {"rescheduled": get_notification_queue().retry_now()}


@notifications_router.delete("/queue")
async def clear_queue() -> dict:
    return {"removed": get_notification_queue().clear()}
