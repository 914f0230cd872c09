"""FastAPI application entry point for cryptowire."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cryptowire import __version__
from cryptowire.api.routes import router
from cryptowire.clients.storage import ImageStorage
from cryptowire.config import get_settings, resolve_database_url
from cryptowire.services.orchestrator import RunOrchestrator
from cryptowire.services.scheduler import Scheduler
from cryptowire.store.database import Database
from cryptowire.store.repositories import ArticleStore, DirectoryStore, SettingsStore
from cryptowire.utils.logging import get_logger, setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger = get_logger(__name__)
    logger.info("cryptowire starting", version=__version__)

    database = Database(resolve_database_url(settings))
    await database.create_tables()

    image_storage = None
    if settings.gcs_images_bucket:
        image_storage = ImageStorage(settings.gcs_images_bucket)

    settings_store = SettingsStore(database)
    orchestrator = RunOrchestrator(
        settings=settings,
        settings_store=settings_store,
        article_store=ArticleStore(database),
        directory_store=DirectoryStore(database),
        image_storage=image_storage,
    )
    scheduler = Scheduler(orchestrator, settings_store, timezone=settings.timezone)

    app.state.settings_store = settings_store
    app.state.scheduler = scheduler

    if settings.start_scheduler:
        await scheduler.start()

    yield

    logger.info("cryptowire shutting down")
    scheduler.shutdown()
    await database.dispose()


app = FastAPI(
    title="cryptowire",
    description="Scheduled crypto news acquisition: discovery, extraction, dedup and distribution",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic info."""
    return {
        "name": "cryptowire",
        "version": __version__,
        "docs": "/docs",
    }
