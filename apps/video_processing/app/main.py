from __future__ import annotations

import structlog
from fastapi import FastAPI

from .api.routes.health import router as health_router
from .api.routes.ingress import router as ingress_router
from .api.routes.videos import router as videos_router
from .core.config import get_settings
from .core.logging import configure_logging
from .db import dispose_engine, init_db
from .services.media import LocalWorkspace
from .telemetry import configure_tracing, setup_prometheus

logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.project_name, version=settings.service_version)

    @app.on_event("startup")
    async def _startup() -> None:
        configure_logging(settings)
        LocalWorkspace.from_settings(settings).setup()
        if settings.database_url:
            await init_db()
        else:
            logger.warning("startup.metadata_store.in_memory")
        logger.info(
            "startup.completed",
            version=settings.service_version,
            transcription_enabled=settings.enable_transcription,
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await dispose_engine()

    app.include_router(ingress_router)
    app.include_router(health_router)
    app.include_router(videos_router)

    if settings.enable_prometheus_metrics:
        setup_prometheus(app)
    configure_tracing(app)

    return app


app = create_app()
