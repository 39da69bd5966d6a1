from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cliphub.core.auth import AuthContext, get_auth_context
from cliphub.core.config import Settings, get_settings
from cliphub.core.jobs import BaseWorkerDispatch, get_worker_dispatch
from cliphub.core.storage import ObjectStore
from cliphub.ingest.source_resolver import SourceResolver
from cliphub.services.clip_repository import ClipRepository
from cliphub.services.download_service import DownloadRetriever
from cliphub.services.ingest_service import IngestionCoordinator
from cliphub.services.realtime import ChangeFeed


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):  # pragma: no cover - misconfigured app
        raise RuntimeError("session_factory_not_configured")
    async with session_factory() as session:
        yield session


def get_object_store(request: Request) -> ObjectStore:
    store: ObjectStore = request.app.state.object_store
    return store


def get_change_feed(request: Request) -> ChangeFeed:
    feed: ChangeFeed = request.app.state.change_feed
    return feed


def get_app_settings() -> Settings:
    return get_settings()


def get_dispatch() -> BaseWorkerDispatch:
    return get_worker_dispatch()


def build_source_resolver(settings: Settings) -> SourceResolver:
    return SourceResolver(
        max_size_bytes=settings.max_upload_size_bytes,
        allowed_extensions=settings.allowed_video_extensions,
        supported_hosts=settings.supported_platform_hosts,
    )


async def get_clip_repository(
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed),
) -> ClipRepository:
    return ClipRepository(session, feed)


async def get_ingestion_coordinator(
    repository: ClipRepository = Depends(get_clip_repository),
    store: ObjectStore = Depends(get_object_store),
    dispatch: BaseWorkerDispatch = Depends(get_dispatch),
    settings: Settings = Depends(get_app_settings),
) -> IngestionCoordinator:
    return IngestionCoordinator(build_source_resolver(settings), store, repository, dispatch)


def get_download_retriever(
    store: ObjectStore = Depends(get_object_store),
    settings: Settings = Depends(get_app_settings),
) -> DownloadRetriever:
    return DownloadRetriever(store, timeout_s=settings.download_timeout_s)


AuthDependency = Annotated[AuthContext, Depends(get_auth_context)]
RepositoryDependency = Annotated[ClipRepository, Depends(get_clip_repository)]
CoordinatorDependency = Annotated[IngestionCoordinator, Depends(get_ingestion_coordinator)]
RetrieverDependency = Annotated[DownloadRetriever, Depends(get_download_retriever)]


def require_scope(scope: str):
    async def _check(context: AuthDependency) -> AuthContext:
        if not context.has_scope(scope):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"{scope}_scope_required")
        return context

    return _check


__all__ = [
    "get_session",
    "get_object_store",
    "get_change_feed",
    "get_app_settings",
    "get_dispatch",
    "build_source_resolver",
    "get_clip_repository",
    "get_ingestion_coordinator",
    "get_download_retriever",
    "AuthDependency",
    "RepositoryDependency",
    "CoordinatorDependency",
    "RetrieverDependency",
    "require_scope",
]
