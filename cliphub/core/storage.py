from __future__ import annotations

import asyncio
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Callable, Optional
from urllib.parse import quote, unquote, urlparse

from .config import Settings
from .errors import UploadFailed
from .logging import get_logger


ProgressListener = Callable[["UploadProgress"], None]


@dataclass(slots=True)
class UploadProgress:
    """Advisory transfer progress; listeners run after every chunk."""

    total_bytes: int | None
    transferred_bytes: int = 0
    listeners: list[ProgressListener] = field(default_factory=list)

    @property
    def fraction(self) -> float | None:
        if not self.total_bytes:
            return None
        return min(self.transferred_bytes / self.total_bytes, 1.0)

    def subscribe(self, listener: ProgressListener) -> None:
        self.listeners.append(listener)

    def advance(self, size: int) -> None:
        self.transferred_bytes += size
        for listener in self.listeners:
            listener(self)


@dataclass(slots=True)
class UploadBlob:
    stream: BinaryIO
    extension: str
    size_bytes: int | None = None


class ObjectStore(ABC):
    @abstractmethod
    async def upload(self, owner_id: str, blob: UploadBlob, *, progress: UploadProgress | None = None) -> str: ...

    @abstractmethod
    def open_stream(self, uri: str, *, chunk_size: int | None = None) -> AsyncIterator[bytes]: ...

    @abstractmethod
    async def exists(self, uri: str) -> bool: ...

    @abstractmethod
    async def delete(self, uri: str) -> None: ...

    @abstractmethod
    def owns(self, uri: str) -> bool:
        """Whether ``uri`` points into this store."""


class LocalObjectStore(ObjectStore):
    """Filesystem-backed object store suitable for development and single-node deployments."""

    def __init__(self, base_path: Path, *, public_base_url: Optional[str] = None, chunk_size: int = 1024 * 1024):
        self.base_path = base_path.resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.chunk_size = chunk_size
        self._last_timestamp_ms = 0
        self.logger = get_logger(component="object_store")

    def _next_timestamp_ms(self) -> int:
        now_ms = time.time_ns() // 1_000_000
        self._last_timestamp_ms = max(now_ms, self._last_timestamp_ms + 1)
        return self._last_timestamp_ms

    def build_key(self, owner_id: str, extension: str) -> str:
        return f"{owner_id}/{self._next_timestamp_ms()}.{extension.lstrip('.').lower()}"

    def public_uri(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{quote(key)}"
        return (self.base_path / key).as_uri()

    def _resolve(self, uri_or_key: str) -> Path:
        parsed = urlparse(uri_or_key)
        if parsed.scheme == "file":
            path = Path(unquote(parsed.path)).resolve()
        elif self.public_base_url and uri_or_key.startswith(f"{self.public_base_url}/"):
            path = (self.base_path / unquote(uri_or_key[len(self.public_base_url) + 1 :])).resolve()
        elif parsed.scheme == "":
            path = (self.base_path / uri_or_key).resolve()
        else:
            raise ValueError(f"Unsupported URI for local storage: {uri_or_key}")
        if not path.is_relative_to(self.base_path):
            raise ValueError(f"URI escapes the storage root: {uri_or_key}")
        return path

    def owns(self, uri: str) -> bool:
        try:
            self._resolve(uri)
        except ValueError:
            return False
        return True

    def _claim(self, owner_id: str, extension: str) -> tuple[str, Path, BinaryIO]:
        """Create a fresh object file, skipping keys another store instance already wrote."""
        if not owner_id or owner_id in {".", ".."} or "/" in owner_id or "\\" in owner_id:
            raise UploadFailed(f"invalid owner id for storage key: {owner_id!r}")
        while True:
            key = self.build_key(owner_id, extension)
            target = (self.base_path / key).resolve()
            if not target.is_relative_to(self.base_path):
                raise UploadFailed(f"storage key escapes the storage root: {key}")
            target.parent.mkdir(parents=True, exist_ok=True)
            try:
                return key, target, target.open("xb")
            except FileExistsError:
                self.logger.debug("upload_key_taken", key=key)

    async def upload(self, owner_id: str, blob: UploadBlob, *, progress: UploadProgress | None = None) -> str:
        progress = progress or UploadProgress(total_bytes=blob.size_bytes)
        if progress.total_bytes is None:
            progress.total_bytes = blob.size_bytes
        try:
            key, target, handle = await asyncio.to_thread(self._claim, owner_id, blob.extension)
        except OSError as exc:
            self.logger.error("upload_failed", owner_id=owner_id, error=str(exc))
            raise UploadFailed(f"could not store an object for {owner_id}: {exc}") from exc
        try:
            with handle:
                while True:
                    chunk = await asyncio.to_thread(blob.stream.read, self.chunk_size)
                    if not chunk:
                        break
                    await asyncio.to_thread(handle.write, chunk)
                    progress.advance(len(chunk))
        except OSError as exc:
            self.logger.error("upload_failed", key=key, error=str(exc))
            await asyncio.to_thread(self._discard, target)
            raise UploadFailed(f"could not store {key}: {exc}") from exc

        uri = self.public_uri(key)
        self.logger.info("upload_stored", key=key, size_bytes=progress.transferred_bytes)
        return uri

    def _discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            self.logger.warning("partial_upload_cleanup_failed", path=os.fspath(path), error=str(exc))

    async def open_stream(self, uri: str, *, chunk_size: int | None = None) -> AsyncIterator[bytes]:
        path = self._resolve(uri)
        size = chunk_size or self.chunk_size
        handle = await asyncio.to_thread(path.open, "rb")
        try:
            while chunk := await asyncio.to_thread(handle.read, size):
                yield chunk
        finally:
            handle.close()

    async def exists(self, uri: str) -> bool:
        return await asyncio.to_thread(self._resolve(uri).exists)

    async def delete(self, uri: str) -> None:
        path = self._resolve(uri)
        await asyncio.to_thread(path.unlink, missing_ok=True)
        self.logger.info("object_deleted", path=os.fspath(path))


def get_object_store(settings: Settings) -> ObjectStore:
    if settings.storage_backend == "local":
        return LocalObjectStore(
            base_path=Path(settings.storage_root),
            public_base_url=settings.public_base_url,
            chunk_size=settings.upload_chunk_size,
        )
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "ObjectStore",
    "LocalObjectStore",
    "UploadBlob",
    "UploadProgress",
    "ProgressListener",
    "get_object_store",
]
