"""Storefront FastAPI application.

Serves the cart, checkout and order APIs synchronously over HTTP, with each
request wrapped in the ordering domain context. The notification queue runs
beside the app as an asyncio task, started and stopped with the lifespan.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from contextlib import asynccontextmanager
from datetime import timedelta
from uuid import uuid4

# ---------------------------------------------------------------------------
# Logging and domain initialization
# ---------------------------------------------------------------------------
# PROTEAN_ENV selects the domain.toml overlay; LOG_LEVEL / LOG_FORMAT tune output.
from ordering.utils.logging import bind_request_context, clear_request_context, configure_logging

configure_logging()

from fastapi import FastAPI, Request  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402
from protean.integrations.fastapi import register_exception_handlers  # noqa: E402

from notifications.dispatch import NotificationDispatcher  # noqa: E402
from notifications.queue import NotificationQueue, set_notification_queue  # noqa: E402
from ordering.config import setting  # noqa: E402
from ordering.domain import ordering  # noqa: E402

ordering.init()


def build_notification_queue() -> NotificationQueue:
    """Create the process-wide queue from the ``[custom]`` domain settings."""
    with ordering.domain_context():
        return NotificationQueue(
            NotificationDispatcher(),
            poll_interval=float(setting("NOTIFICATION_POLL_INTERVAL_SECONDS", 5)),
            max_concurrency=int(setting("NOTIFICATION_MAX_CONCURRENCY", 3)),
            max_attempts=int(setting("NOTIFICATION_MAX_ATTEMPTS", 3)),
            base_delay=timedelta(seconds=float(setting("NOTIFICATION_BASE_DELAY_SECONDS", 300))),
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    queue = build_notification_queue()
    set_notification_queue(queue)
    await queue.start()
    try:
        yield
    finally:
        await queue.stop()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Storefront API",
    description="Cart, checkout and order management",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the ordering domain context and bind request log context for each request."""
    clear_request_context()
    bind_request_context(
        request_id=request.headers.get("x-request-id") or uuid4().hex,
        method=request.method,
        path=request.url.path,
    )
    with ordering.domain_context():
        response = await call_next(request)
    return response


register_exception_handlers(app)

from ordering.api import register_checkout_exception_handlers  # noqa: E402

register_checkout_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from notifications.api import notifications_router  # noqa: E402
from ordering.api import cart_router, checkout_router, order_router  # noqa: E402

app.include_router(cart_router)
app.include_router(checkout_router)
app.include_router(order_router)
app.include_router(notifications_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": {"name": ordering.name}})
