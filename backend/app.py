"""FastAPI application entry point for the Liirat market-data API."""

import asyncio
import contextlib
import logging
import sys

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from errors import register_error_handlers
from services.api_optimizer import APIOptimizer, run_periodic_cleanup

# Structured logging: JSON for production, human-readable for local
if settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


def create_app(optimizer: APIOptimizer | None = None) -> FastAPI:
    app = FastAPI(title="Liirat API", version="1.0.0")

    # One optimizer per process, shared by every route
    app.state.optimizer = optimizer or APIOptimizer()
    app.state.cleanup_task = None

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Centralized error handlers
    register_error_handlers(app)

    from routes.ai import router as ai_router
    from routes.alerts import router as alerts_router
    from routes.eodhd import router as eodhd_router
    from routes.health import router as health_router

    app.include_router(health_router)
    app.include_router(eodhd_router)
    app.include_router(ai_router)
    app.include_router(alerts_router)

    @app.on_event("startup")
    async def _validate_config() -> None:
        missing = settings.validate()
        if missing:
            logger.warning("Missing env vars (upstream routes will return 503): %s", ", ".join(missing))

    @app.on_event("startup")
    async def _start_cleanup() -> None:
        app.state.cleanup_task = asyncio.create_task(
            run_periodic_cleanup(app.state.optimizer, settings.cleanup_interval_seconds)
        )

    @app.on_event("shutdown")
    async def _stop_cleanup() -> None:
        task = app.state.cleanup_task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            app.state.cleanup_task = None

    return app


app = create_app()
