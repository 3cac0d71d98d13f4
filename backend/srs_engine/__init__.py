import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from srs_engine.config import Settings, now, settings
from srs_engine.db import init_all_databases
from srs_engine.services.engine import SpacedRepetitionEngine
from srs_engine.services.migration import LegacyMigrator
from srs_engine.services.store import ScheduleStore

logger = logging.getLogger(__name__)


def create_app(app_settings: Settings = settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db_path = await init_all_databases(
            app_settings.data_dir, app_settings.sqlite_filename
        )
        store = ScheduleStore(db_path)
        report = await LegacyMigrator(
            store,
            storage_key=app_settings.legacy_storage_key,
            marker_key=app_settings.legacy_migrated_key,
        ).migrate()
        logger.info("Legacy migration: %s (%d imported)", report.status, report.imported)

        app.state.settings = app_settings
        app.state.engine = SpacedRepetitionEngine(
            store, clock=lambda: now(app_settings.timezone)
        )
        yield
        # Let in-flight review writes land before the process exits
        await store.flush()

    application = FastAPI(
        title="SRS Engine", version="0.1.0", lifespan=lifespan
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from srs_engine.routers import health, review

    application.include_router(health.router)
    application.include_router(review.router, prefix="/srs", tags=["srs"])

    return application


app = create_app()
