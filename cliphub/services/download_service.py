from __future__ import annotations

import re
from typing import AsyncIterator, Callable
from urllib.parse import urlparse

import httpx

from cliphub.core.errors import ClipNotReady, DownloadFailed
from cliphub.core.logging import get_logger
from cliphub.core.storage import ObjectStore
from cliphub.db.models import Clip, ClipStatus

DOWNLOAD_CHUNK_SIZE = 64 * 1024
_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\r\n]+')

ClientFactory = Callable[[], httpx.AsyncClient]


def suggested_filename(clip: Clip) -> str:
    stem = _UNSAFE_FILENAME_CHARS.sub("_", clip.title).strip() or clip.id
    return f"{stem}.mp4"


class DownloadRetriever:
    """Fetch the bytes of a finished clip for local persistence.

    No retries; callers re-invoke after a ``DownloadFailed``.
    """

    def __init__(self, store: ObjectStore, *, timeout_s: float = 60.0, client_factory: ClientFactory | None = None):
        self.store = store
        self.timeout_s = timeout_s
        self.client_factory = client_factory or self._default_client
        self.logger = get_logger(component="download_retriever")

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_s, follow_redirects=True)

    def download(self, clip: Clip) -> AsyncIterator[bytes]:
        """Return a byte stream for ``clip``.

        The readiness check runs before any I/O, so a clip that is still
        processing (or failed) raises immediately.

        Raises:
            ClipNotReady: ``clip.status`` is not ``completed``.
        """
        if clip.status is not ClipStatus.completed:
            raise ClipNotReady(clip.id, clip.status.value)

        uri = clip.artifact_uri
        scheme = urlparse(uri).scheme.lower()
        if self.store.owns(uri):
            return self._stream_local(clip.id, uri)
        if scheme in {"http", "https"}:
            return self._stream_remote(clip.id, uri)
        raise DownloadFailed(f"no retrieval route for {uri}")

    async def _stream_local(self, clip_id: str, uri: str) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.store.open_stream(uri, chunk_size=DOWNLOAD_CHUNK_SIZE):
                yield chunk
        except (OSError, ValueError) as exc:
            self.logger.warning("download_failed", clip_id=clip_id, uri=uri, error=str(exc))
            raise DownloadFailed(f"could not read {uri}: {exc}") from exc

    async def _stream_remote(self, clip_id: str, uri: str) -> AsyncIterator[bytes]:
        try:
            async with self.client_factory() as client:
                async with client.stream("GET", uri) as response:
                    if not response.is_success:
                        raise DownloadFailed(f"artifact request returned HTTP {response.status_code}")
                    async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                        yield chunk
        except httpx.HTTPError as exc:
            self.logger.warning("download_failed", clip_id=clip_id, uri=uri, error=type(exc).__name__)
            raise DownloadFailed(f"could not fetch {uri}") from exc


__all__ = ["DownloadRetriever", "suggested_filename", "DOWNLOAD_CHUNK_SIZE"]
