"""HTTP mapping for checkout failures.

Validation and not-found errors are handled by Protean's FastAPI handlers;
these cover the storefront's own error taxonomy.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ordering.errors import GENERIC_RETRY_MESSAGE, CartAlreadyConvertedError, IntegrityError, PaymentGatewayError

logger = structlog.get_logger(__name__)


def register_checkout_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CartAlreadyConvertedError)
    async def _cart_already_converted(request: Request, exc: CartAlreadyConvertedError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.exception_handler(PaymentGatewayError)
    async def _payment_gateway_error(request: Request, exc: PaymentGatewayError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(IntegrityError)
    async def _integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
        logger.error("Integrity error while handling request", path=request.url.path, detail=exc.detail, **exc.context)
        return JSONResponse(status_code=500, content={"error": GENERIC_RETRY_MESSAGE})
