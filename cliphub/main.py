from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from cliphub.api.v1 import get_api_router
from cliphub.core.config import get_settings
from cliphub.core.db import create_engine, create_schema, create_session_factory
from cliphub.core.logging import configure_logging, get_logger, level_from_name
from cliphub.core.storage import get_object_store
from cliphub.services.realtime import ChangeFeed


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    logger = get_logger(component="app")
    object_store = get_object_store(settings)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    change_feed = ChangeFeed(max_pending=settings.realtime_queue_size)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.environment_lower in {"development", "dev", "test"}:
            await create_schema(engine)
        app.state.settings = settings
        app.state.object_store = object_store
        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.change_feed = change_feed
        logger.info("app_started", environment=settings.environment, storage_root=str(settings.storage_root))
        try:
            yield
        finally:
            change_feed.close()
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )

    app.include_router(get_api_router())
    return app


__all__ = ["create_app"]
