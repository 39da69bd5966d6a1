from __future__ import annotations

import asyncio
import io
from pathlib import Path

import httpx
import pytest

from cliphub.core.errors import ClipNotReady, DownloadFailed
from cliphub.core.storage import LocalObjectStore, UploadBlob
from cliphub.db.models import Clip, ClipStatus, SourceKind
from cliphub.services.download_service import DownloadRetriever, suggested_filename


def _clip(status: ClipStatus, artifact_uri: str, *, title: str = "Finals") -> Clip:
    return Clip(
        id="clip-1",
        owner_id="user-1",
        source_kind=SourceKind.remote_url,
        original_source_uri="https://youtube.com/watch?v=abc123",
        artifact_uri=artifact_uri,
        title=title,
        status=status,
    )


def _collect(stream) -> bytes:
    async def _read() -> bytes:
        return b"".join([chunk async for chunk in stream])

    return asyncio.run(_read())


def _no_network() -> httpx.AsyncClient:
    pytest.fail("no network access expected")


def _mock_client(handler):
    return lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.parametrize("status", [ClipStatus.processing, ClipStatus.failed])
def test_unfinished_clips_are_not_downloadable(tmp_path: Path, status):
    retriever = DownloadRetriever(LocalObjectStore(tmp_path), client_factory=_no_network)
    with pytest.raises(ClipNotReady) as excinfo:
        retriever.download(_clip(status, "https://cdn.example/finals.mp4"))
    assert excinfo.value.status == status.value


def test_local_artifact_is_streamed_from_store(tmp_path: Path):
    store = LocalObjectStore(tmp_path)
    uri = asyncio.run(store.upload("user-1", UploadBlob(stream=io.BytesIO(b"clip-bytes"), extension="mp4")))
    retriever = DownloadRetriever(store, client_factory=_no_network)

    assert _collect(retriever.download(_clip(ClipStatus.completed, uri))) == b"clip-bytes"


def test_missing_local_artifact_raises_download_failed(tmp_path: Path):
    store = LocalObjectStore(tmp_path)
    retriever = DownloadRetriever(store, client_factory=_no_network)
    stream = retriever.download(_clip(ClipStatus.completed, "user-1/404.mp4"))
    with pytest.raises(DownloadFailed):
        _collect(stream)


def test_remote_artifact_is_fetched_over_http(tmp_path: Path):
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, content=b"remote-bytes")

    retriever = DownloadRetriever(LocalObjectStore(tmp_path), client_factory=_mock_client(handler))
    data = _collect(retriever.download(_clip(ClipStatus.completed, "https://cdn.example/finals.mp4")))

    assert data == b"remote-bytes"
    assert seen == ["https://cdn.example/finals.mp4"]


def test_remote_error_status_raises_download_failed(tmp_path: Path):
    retriever = DownloadRetriever(
        LocalObjectStore(tmp_path),
        client_factory=_mock_client(lambda request: httpx.Response(404)),
    )
    with pytest.raises(DownloadFailed):
        _collect(retriever.download(_clip(ClipStatus.completed, "https://cdn.example/gone.mp4")))


def test_transport_error_raises_download_failed(tmp_path: Path):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    retriever = DownloadRetriever(LocalObjectStore(tmp_path), client_factory=_mock_client(handler))
    with pytest.raises(DownloadFailed):
        _collect(retriever.download(_clip(ClipStatus.completed, "https://cdn.example/finals.mp4")))


def test_unroutable_artifact_uri_is_rejected(tmp_path: Path):
    retriever = DownloadRetriever(LocalObjectStore(tmp_path), client_factory=_no_network)
    with pytest.raises(DownloadFailed):
        retriever.download(_clip(ClipStatus.completed, "s3://bucket/finals.mp4"))


def test_suggested_filename_uses_title():
    assert suggested_filename(_clip(ClipStatus.completed, "x", title="Finals")) == "Finals.mp4"
    assert suggested_filename(_clip(ClipStatus.completed, "x", title='a/b:c?')) == "a_b_c_.mp4"
    assert suggested_filename(_clip(ClipStatus.completed, "x", title="  ")) == "clip-1.mp4"
