# app/main.py
import asyncio
import contextlib
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from slowapi.middleware import SlowAPIMiddleware
from slowapi.errors import RateLimitExceeded

from app.api.deps import build_container, seed_token_store
from app.api.v1.endpoints.webhooks import router as webhooks_router
from app.api.v1.router import api_router_v1
from app.core.config import settings
from app.core.logging import setup_logging
from app.core.rate_limit import limiter
from app.infra.tasks import sweep_cache_forever

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.PROJECT_VERSION,
    )
    app.state.container = build_container(settings)
    app.state.sweeper = None

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # Routers
    app.include_router(webhooks_router)
    app.include_router(api_router_v1)

    @app.on_event("startup")
    async def on_startup() -> None:
        container = app.state.container
        await seed_token_store(container)
        app.state.sweeper = asyncio.create_task(
            sweep_cache_forever(container.cache, settings.RISK_CACHE_SWEEP_INTERVAL)
        )
        logger.info("🛡️ FraudShieldBD Order Guard iniciado")
        if not settings.FRAUDSHIELD_API_KEY:
            logger.warning("⚠️ FRAUDSHIELD_API_KEY no está configurada")
        if not settings.SHOPIFY_API_SECRET:
            logger.warning("⚠️ SHOPIFY_API_SECRET no está configurado; todos los webhooks serán rechazados")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        if app.state.sweeper is not None:
            app.state.sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await app.state.sweeper
        await app.state.container.token_store.close()
        logger.info("🛑 FraudShieldBD Order Guard detenido")

    @app.get("/")
    async def root():
        return {
            "service": settings.PROJECT_NAME,
            "version": settings.PROJECT_VERSION,
            "status": "running",
        }

    return app


def _rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded", "error": str(exc)},
    )


app = create_app()
