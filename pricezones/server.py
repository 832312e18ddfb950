"""FastAPI application exposing the scanner, zone store and mitigation engine."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from .app.container import Services, build_services
from .app.middleware import RequestIdMiddleware
from .app.routers import history, price_action, reference, scanner
from .config import get_settings
from .db import close_pool, ensure_schema, get_pool
from .logging_setup import setup_logging
from .schemas import ApiResponse
from .telemetry import prometheus_response

logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Build the application; ``services`` short-circuits startup wiring (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging((services.settings if services is not None else get_settings()).log_level)
        owned = services is None
        if owned:
            settings = get_settings()
            persisted = await ensure_schema()
            pool = await get_pool() if persisted else None
            if pool is None:
                logger.info("zone store running in-memory (database unavailable or not configured)")
            app.state.services = build_services(settings=settings, pool=pool)
        else:
            app.state.services = services
        counts = await app.state.services.reload_reference()
        logger.info("reference data loaded", extra=counts)
        try:
            yield
        finally:
            if owned:
                await app.state.services.close()
                await close_pool()

    app = FastAPI(
        title="Price Zones Backend",
        description="Stock screening with order-block and fair-value-gap mitigation detection.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        body = ApiResponse(success=False, error=str(exc.detail))
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> dict:
        return {"status": "ok"}

    @app.get("/metrics", include_in_schema=False)
    async def metrics_endpoint() -> Response:
        payload, content_type = prometheus_response()
        return Response(content=payload, media_type=content_type)

    app.include_router(scanner.router)
    app.include_router(price_action.router)
    app.include_router(reference.router)
    app.include_router(history.router)
    return app


app = create_app()

__all__ = ["app", "create_app"]
