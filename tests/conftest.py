import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, TypeVar
from urllib.parse import urlparse

import jwt
import pytest
import structlog
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cliphub.api.deps import build_source_resolver
from cliphub.core.config import Settings, get_settings
from cliphub.core.db import Base, create_engine, create_schema, create_session_factory
from cliphub.core.jobs import BaseWorkerDispatch, NullWorkerDispatch, get_worker_dispatch
from cliphub.core.storage import LocalObjectStore
from cliphub.main import create_app
from cliphub.services.clip_repository import ClipRepository
from cliphub.services.ingest_service import IngestionCoordinator
from cliphub.services.realtime import ChangeFeed

T = TypeVar("T")

TEST_SECRET = "test-secret"
TEST_ISSUER = "cliphub-test"
TEST_AUDIENCE = "cliphub"


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default ClipHub environment bootstrap fixture for tests that manage their own .env",
    )


@pytest.fixture(autouse=True)
def reset_structlog():
    # configure_logging binds structlog to the current (per-test captured) stdout;
    # reset it so later tests do not log into a closed capture stream.
    yield
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path, tmp_path_factory):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        get_worker_dispatch.cache_clear()
        yield
        get_worker_dispatch.cache_clear()
        get_settings.cache_clear()
        return
    # The database lives outside tmp_path so tests can inspect tmp_path for stray files.
    db_url = f"sqlite+aiosqlite:///{tmp_path_factory.mktemp('db') / 'cliphub_test.db'}"

    # Aliases are set too so values leaked by other tests cannot override these.
    monkeypatch.setenv("CLIPHUB_ENV", "test")
    monkeypatch.setenv("CLIPHUB_ENVIRONMENT", "test")
    monkeypatch.setenv("CLIPHUB_LOG_LEVEL", "debug")
    monkeypatch.setenv("CLIPHUB_DB_URL", db_url)
    monkeypatch.setenv("CLIPHUB_DATABASE_URL", db_url)
    monkeypatch.setenv("CLIPHUB_STORAGE_BACKEND", "local")
    monkeypatch.setenv("CLIPHUB_STORAGE_ROOT", str(tmp_path / "media"))
    monkeypatch.setenv("CLIPHUB_WORKER", "none")
    monkeypatch.setenv("CLIPHUB_WORKER_BACKEND", "none")
    monkeypatch.setenv("CLIPHUB_REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setenv("CLIPHUB_JWT_SECRET", TEST_SECRET)
    monkeypatch.setenv("CLIPHUB_JWT_ISSUER", TEST_ISSUER)
    monkeypatch.setenv("CLIPHUB_JWT_AUDIENCE", TEST_AUDIENCE)

    get_settings.cache_clear()
    get_worker_dispatch.cache_clear()
    settings = get_settings()
    engine = create_engine(settings)

    async def _setup() -> None:
        await create_schema(engine)

    asyncio.run(_setup())

    yield settings

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    get_worker_dispatch.cache_clear()
    get_settings.cache_clear()


@pytest.fixture()
def client(configure_environment):
    app = create_app()
    with TestClient(app) as client:
        yield client


def build_token(user_id: str | None, *, scopes: list[str] | None = None) -> str:
    payload: dict[str, object] = {"iss": TEST_ISSUER, "aud": TEST_AUDIENCE}
    if user_id:
        payload["sub"] = user_id
    if scopes:
        payload["scopes"] = scopes
    return jwt.encode(payload, TEST_SECRET, algorithm="HS256")


def auth_headers(user_id: str, *, scopes: list[str] | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token(user_id, scopes=scopes)}"}


@pytest.fixture()
def user_headers() -> dict[str, str]:
    return auth_headers("user-1")


@pytest.fixture()
def worker_headers() -> dict[str, str]:
    return auth_headers("highlight-worker", scopes=["worker"])


def uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        raise ValueError("Unsupported URI in tests")
    return Path(parsed.path)


@dataclass
class Harness:
    """Services wired against the per-test database and storage root."""

    settings: Settings
    store: LocalObjectStore
    feed: ChangeFeed
    repository: ClipRepository
    session_factory: async_sessionmaker[AsyncSession]

    def coordinator(
        self,
        *,
        repository: ClipRepository | None = None,
        dispatch: BaseWorkerDispatch | None = None,
    ) -> IngestionCoordinator:
        return IngestionCoordinator(
            build_source_resolver(self.settings),
            self.store,
            repository or self.repository,
            dispatch or NullWorkerDispatch(),
        )


@pytest.fixture()
def run_with_services(configure_environment) -> Callable[[Callable[[Harness], Awaitable[T]]], T]:
    settings = configure_environment

    def _run(scenario: Callable[[Harness], Awaitable[T]]) -> T:
        async def _main() -> T:
            engine = create_engine(settings)
            session_factory = create_session_factory(engine)
            store = LocalObjectStore(Path(settings.storage_root), chunk_size=settings.upload_chunk_size)
            feed = ChangeFeed(max_pending=settings.realtime_queue_size)
            try:
                async with session_factory() as session:
                    harness = Harness(settings, store, feed, ClipRepository(session, feed), session_factory)
                    return await scenario(harness)
            finally:
                feed.close()
                await engine.dispose()

        return asyncio.run(_main())

    return _run
