from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from referral_core.middleware.error_handlers import (
    ExceptionHandlerMiddleware,
    PerformanceMiddleware,
    referral_core_exception_handler,
)
from referral_core.routers import ai, matching, nudges
from referral_core.services.container import ServiceContainer
from referral_core.services.scoring import validate_weight_presets
from referral_core.utils.config import load_settings
from referral_core.utils.exceptions import ReferralCoreError
from referral_core.utils.logging_config import configure_for_environment, get_logger

logger = get_logger(__name__)


def create_app(settings=None, container: ServiceContainer = None, start_sweeper: bool = True) -> FastAPI:
    """Application factory; tests pass a prebuilt container."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Referral core API starting up...")
        # weight presets and settings fail fast here, before any request is served
        validate_weight_presets()
        nonlocal container
        if container is None:
            container = ServiceContainer(settings or load_settings())
        app.state.container = container
        await container.startup(start_sweeper=start_sweeper)
        logger.info("Referral core API startup completed")

        yield

        logger.info("Referral core API shutting down...")
        await container.shutdown()
        logger.info("Referral core API shutdown completed")

    app = FastAPI(title="Referral Core API", version="1.0.0", lifespan=lifespan)

    app.add_exception_handler(ReferralCoreError, referral_core_exception_handler)
    app.add_middleware(PerformanceMiddleware, slow_request_threshold=2.0)
    app.add_middleware(ExceptionHandlerMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    @app.head("/health")
    async def health_check():
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    app.include_router(matching.router, prefix="/api/matching", tags=["matching"])
    app.include_router(nudges.router, prefix="/api/nudges", tags=["nudges"])
    app.include_router(ai.router, prefix="/api/ai", tags=["ai"])
    return app


def build_app() -> FastAPI:
    """Entry point for `uvicorn referral_core.main:build_app --factory`"""
    configure_for_environment()
    return create_app()
