import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from notifications.api import notifications_router
from ordering.api import cart_router, checkout_router, order_router, register_checkout_exception_handlers
from ordering.domain import ordering
from protean.integrations.fastapi import register_exception_handlers


@pytest.fixture()
def client():
    app = FastAPI()

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        with ordering.domain_context():
            return await call_next(request)

    register_exception_handlers(app)
    register_checkout_exception_handlers(app)
    app.include_router(cart_router)
    app.include_router(checkout_router)
    app.include_router(order_router)
    app.include_router(notifications_router)
    return TestClient(app)
