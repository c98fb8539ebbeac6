from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from hardlinkfs.api.routes.duplicates import router as duplicates_router
from hardlinkfs.api.routes.health import router as health_router
from hardlinkfs.api.routes.index import router as index_router
from hardlinkfs.api.routes.links import router as links_router
from hardlinkfs.core.config import get_settings
from hardlinkfs.core.logging import configure_logging
from hardlinkfs.db.init_db import initialize_database
from hardlinkfs.db.session import get_session_factory
from hardlinkfs.jobs.manager import ScanManager
from hardlinkfs.jobs.registry import ScanJobRegistry
from hardlinkfs.jobs.service import ScanJobStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    initialize_database()

    store = ScanJobStore(get_session_factory())
    recovered = store.recover_interrupted()
    if recovered:
        logger.warning("Marked %d interrupted scan jobs as failed", recovered)

    registry = ScanJobRegistry()
    app.state.scan_manager = ScanManager(settings=settings, registry=registry, store=store)
    try:
        yield
    finally:
        app.state.scan_manager.shutdown()
        del app.state.scan_manager


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(duplicates_router, prefix="/api/v1")
    app.include_router(links_router, prefix="/api/v1")
    app.include_router(index_router, prefix="/api/v1")
    return app
