from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from adreel.api.v1 import get_api_router
from adreel.core.config import get_settings
from adreel.core.db import open_database
from adreel.core.http import create_async_client
from adreel.core.logging import configure_logging, get_logger
from adreel.core.storage import LocalStorage, get_storage


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(level=settings.log_level)
    logger = get_logger(component="app")
    storage = get_storage(settings)
    database = open_database(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.storage = storage
        app.state.database = database
        app.state.session_factory = database.session_factory
        app.state.http_client = create_async_client(settings)
        logger.info("app_started", environment=settings.environment, storage_backend=settings.storage_backend)
        try:
            yield
        finally:
            await app.state.http_client.aclose()
            await database.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )

    app.include_router(get_api_router())
    if isinstance(storage, LocalStorage):
        app.mount("/media", StaticFiles(directory=storage.base_path), name="media")
    return app


app = create_app()


__all__ = ["app", "create_app"]
