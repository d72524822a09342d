from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from backend.db import create_engine, create_session_factory, init_db

from .api.v1.routes import router as transactions_router
from .core.config import Settings, get_settings
from .core.errors import StorageError
from .core.exception_handlers import setup_exception_handlers
from .core.logging import configure_logging
from .middleware import RateLimitMiddleware, RequestLoggingMiddleware
from .services.ratelimit import RateLimiter
from .services.transactions import TransactionStore, build_transaction_store

logger = logging.getLogger(__name__)


def build_rate_limiter(settings: Settings) -> RateLimiter | None:
    if not settings.rate_limit_enabled:
        return None
    return RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
        block_seconds=settings.rate_limit_block_seconds,
        max_entries=settings.rate_limit_max_entries,
        sweep_interval_seconds=settings.rate_limit_sweep_interval_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Configure application services during startup and ensure graceful shutdown."""

    configure_logging()
    settings: Settings = get_settings()

    engine = None
    session_factory = None
    if settings.storage_backend == "database":
        engine = create_engine(settings.database_url)
        session_factory = create_session_factory(engine)
        await init_db(engine, session_factory, settings.version)
    transaction_store = build_transaction_store(settings, session_factory)

    rate_limiter = build_rate_limiter(settings)
    if rate_limiter is not None:
        rate_limiter.start()

    app.state.settings = settings
    app.state.db_engine = engine
    app.state.transaction_store = transaction_store
    app.state.rate_limiter = rate_limiter

    logger.info(
        "Starting cashflow API version=%s storage=%s rate_limit=%s",
        settings.version,
        transaction_store.name,
        "on" if rate_limiter is not None else "off",
    )

    try:
        yield
    finally:
        if rate_limiter is not None:
            await rate_limiter.shutdown()
        await transaction_store.close()
        if engine is not None:
            await engine.dispose()
        logger.info("cashflow API stopped")


app = FastAPI(title="Cashflow API", version=get_settings().version, lifespan=lifespan)

app.add_middleware(RateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

setup_exception_handlers(app)
app.include_router(transactions_router)


@app.get("/healthz")
async def healthz(request: Request, settings: Settings = Depends(get_settings)) -> dict[str, str]:
    store: TransactionStore = request.app.state.transaction_store
    return {
        "status": "ok",
        "version": settings.version,
        "storage": store.name,
    }


@app.get("/readyz")
async def readyz(request: Request) -> dict[str, Any]:
    store: TransactionStore = request.app.state.transaction_store

    storage_ok = True
    storage_detail = "ok"
    try:
        await store.healthcheck()
    except StorageError as exc:
        storage_ok = False
        storage_detail = str(exc)

    return {
        "ready": storage_ok,
        "storage": {"ok": storage_ok, "detail": storage_detail},
    }


@app.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
