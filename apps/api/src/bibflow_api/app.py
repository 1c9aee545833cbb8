from __future__ import annotations

import logging
from collections.abc import Sequence
from contextlib import asynccontextmanager

from fastapi import FastAPI

from bibflow_api.routes.enrichment import router as enrichment_router
from bibflow_api.routes.health import router as health_router
from bibflow_api.routes.publications import router as publications_router
from bibflow_api.routes.sources import router as sources_router
from bibflow_connectors import SourcePlugin
from bibflow_core import SERVICE_API, get_settings
from bibflow_enrichment import EnrichmentCoordinator, build_runtime
from bibflow_observability import request_id_middleware
from db.init_db import init_db
from db.services.records import RecordStore
from db.session import create_db_engine, create_sessionmaker

logger = logging.getLogger(__name__)


def create_app(*, sources: Sequence[SourcePlugin] | None = None) -> FastAPI:
    """
    Build the API application.

    Args:
        sources: Source plugins to serve; built from settings when omitted
    """
    settings = get_settings()
    engine = create_db_engine(settings)
    SessionLocal = create_sessionmaker(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(engine)
        runtime = build_runtime(settings, sources)
        store = RecordStore(SessionLocal)
        coordinator = EnrichmentCoordinator.from_settings(runtime.enrichment, store, settings)
        app.state.runtime = runtime
        app.state.record_store = store
        app.state.coordinator = coordinator
        if settings.api_background_enrichment:
            await coordinator.start()
        try:
            yield
        finally:
            await coordinator.stop()
            await runtime.aclose()
            logger.info("api_shutdown")

    app = FastAPI(title="bibflow API", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.SessionLocal = SessionLocal

    app.middleware("http")(request_id_middleware(SERVICE_API))

    app.include_router(health_router)
    app.include_router(sources_router)
    app.include_router(enrichment_router)
    app.include_router(publications_router)

    return app
