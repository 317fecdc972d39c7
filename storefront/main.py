from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.api.routes_orders import router as orders_router
from storefront.api.routes_payments import router as payments_router
from storefront.cache import build_read_cache
from storefront.core.config import get_settings
from storefront.core.logging import configure_logging
from storefront.domain.errors import FulfillmentError
from storefront.domain.payments.gateway import build_payment_gateway
from storefront.persistence.pg import init_db

configure_logging()
logger = logging.getLogger(__name__)
settings = get_settings()

app = FastAPI(title=settings.app_name)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    app.state.read_cache = build_read_cache(settings)
    app.state.payment_gateway = build_payment_gateway(settings)
    logger.info(
        "storefront ready: env=%s cache=%s gateway=%s",
        settings.env,
        app.state.read_cache.backend,
        app.state.payment_gateway.backend,
    )


@app.exception_handler(FulfillmentError)
async def fulfillment_error_handler(_: Request, exc: FulfillmentError):
    if exc.status_code >= 500:
        logger.warning("request failed: %s %s", exc.kind, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


app.include_router(orders_router)
app.include_router(payments_router)
