from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from gacha_api.core.settings import settings
from gacha_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.notifications import NotificationCounterSink
from .workers import RedemptionExpiryWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    expiry_worker = RedemptionExpiryWorker(
        session_factory=_session_factory,
        interval_seconds=settings.redemption_expiry_interval_seconds,
        notifications=NotificationCounterSink(async_session),
    )
    app.state.redemption_expiry_worker = expiry_worker

    expiry_enabled = settings.redemption_expiry_worker_enabled
    if expiry_enabled:
        expiry_worker.start()
        logger.info(
            "Redemption expiry worker enabled",
            interval_seconds=expiry_worker.interval_seconds,
            grace_seconds=settings.redemption_grace_seconds,
        )
    else:
        logger.info(
            "Redemption expiry worker disabled",
            reason="redemption_expiry_worker_enabled is false",
        )

    try:
        yield
    finally:
        if expiry_enabled and expiry_worker.is_running:
            await expiry_worker.stop()


def create_app() -> FastAPI:
    """Application factory for the gacha reward API."""
    configure_logging(
        service_name="gacha-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Gacha Reward API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="gacha-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
