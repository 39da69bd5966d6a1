from __future__ import annotations

import asyncio
import io
from datetime import datetime, timezone
from pathlib import Path

import pytest

from cliphub.api.deps import build_source_resolver
from cliphub.core import storage
from cliphub.core.errors import FileTooLarge, RepositoryWriteFailed, UnsupportedPlatform, UploadFailed
from cliphub.core.jobs import BaseWorkerDispatch, NullWorkerDispatch
from cliphub.core.storage import LocalObjectStore, UploadProgress
from cliphub.db.models import Clip, ClipStatus, SourceKind
from cliphub.ingest.source_resolver import FileSubmission, UrlSubmission
from cliphub.services.clip_repository import ClipRepository
from cliphub.services.ingest_service import IngestionCoordinator
from tests.conftest import uri_to_path


class _RecordingDispatch(BaseWorkerDispatch):
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def dispatch(self, clip_id: str, source_uri: str) -> None:
        self.calls.append((clip_id, source_uri))


class _ExplodingDispatch(BaseWorkerDispatch):
    async def dispatch(self, clip_id: str, source_uri: str) -> None:
        raise ConnectionError("queue unreachable")


class _FailingRepository(ClipRepository):
    async def create(self, clip: Clip) -> str:
        raise RepositoryWriteFailed("database is read-only")


class _UnreadableStream:
    def read(self, size: int) -> bytes:
        raise OSError("client went away")


def _upload(name: str, data: bytes, *, size: int | None = None) -> FileSubmission:
    return FileSubmission(filename=name, size_bytes=len(data) if size is None else size, stream=io.BytesIO(data))


def _stored_files(root: Path) -> list[Path]:
    return [path for path in root.rglob("*") if path.is_file()]


def test_file_upload_creates_processing_clip(run_with_services):
    payload = b"\x00\x01" * (5 * 1024 * 1024)
    dispatch = _RecordingDispatch()

    async def scenario(h):
        started = datetime.now(timezone.utc)
        clip_id = await h.coordinator(dispatch=dispatch).ingest("user-1", _upload("game_highlight.mp4", payload))
        return started, await h.repository.get("user-1", clip_id)

    started, clip = run_with_services(scenario)
    assert clip.title == "game_highlight"
    assert clip.status is ClipStatus.processing
    assert clip.source_kind is SourceKind.uploaded_file
    assert clip.caption is None
    assert clip.original_source_uri == clip.artifact_uri
    assert clip.created_at >= started

    stored = uri_to_path(clip.original_source_uri)
    assert stored.parent.name == "user-1"
    assert stored.suffix == ".mp4"
    assert stored.stat().st_size == len(payload)
    assert dispatch.calls == [(clip.id, clip.original_source_uri)]


def test_url_import_creates_processing_clip(run_with_services):
    async def scenario(h):
        clip_id = await h.coordinator().ingest("user-1", UrlSubmission(url="https://youtube.com/watch?v=abc123"))
        return await h.repository.get("user-1", clip_id), _stored_files(Path(h.settings.storage_root))

    clip, stored = run_with_services(scenario)
    assert clip.source_kind is SourceKind.remote_url
    assert clip.original_source_uri == "https://youtube.com/watch?v=abc123"
    assert clip.artifact_uri == clip.original_source_uri
    assert clip.caption == "Imported from youtube.com"
    assert clip.title == "watch"
    assert stored == []


def test_rejected_submissions_leave_no_record(run_with_services):
    async def scenario(h):
        coordinator = h.coordinator()
        with pytest.raises(FileTooLarge):
            await coordinator.ingest("user-1", _upload("huge.mp4", b"", size=600 * 1024 * 1024))
        with pytest.raises(UnsupportedPlatform):
            await coordinator.ingest("user-1", UrlSubmission(url="https://example.com/video.mp4"))
        return await h.repository.count(), _stored_files(Path(h.settings.storage_root))

    count, stored = run_with_services(scenario)
    assert count == 0
    assert stored == []


def test_identical_submissions_get_distinct_ids(run_with_services):
    async def scenario(h):
        coordinator = h.coordinator()
        first = await coordinator.ingest("user-1", _upload("same.mov", b"same-bytes"))
        second = await coordinator.ingest("user-1", _upload("same.mov", b"same-bytes"))
        clips = await h.repository.list_by_owner("user-1")
        return first, second, clips

    first, second, clips = run_with_services(scenario)
    assert first != second
    assert len(clips) == 2
    assert clips[0].original_source_uri != clips[1].original_source_uri


def test_concurrent_ingestions_keep_separate_records_and_objects(run_with_services, monkeypatch):
    monkeypatch.setattr(storage.time, "time_ns", lambda: 1_700_000_000_000 * 1_000_000)

    async def scenario(h):
        second_store = LocalObjectStore(Path(h.settings.storage_root))
        async with h.session_factory() as session:
            second = IngestionCoordinator(
                build_source_resolver(h.settings),
                second_store,
                ClipRepository(session, h.feed),
                NullWorkerDispatch(),
            )
            ids = await asyncio.gather(
                h.coordinator().ingest("user-1", _upload("same.mp4", b"AAAA")),
                second.ingest("user-1", _upload("same.mp4", b"BB")),
            )
        return ids, await h.repository.list_by_owner("user-1")

    ids, clips = run_with_services(scenario)
    assert len(set(ids)) == 2
    assert {clip.id for clip in clips} == set(ids)
    uris = {clip.original_source_uri for clip in clips}
    assert len(uris) == 2
    assert sorted(uri_to_path(uri).read_bytes() for uri in uris) == [b"AAAA", b"BB"]


def test_upload_failure_creates_no_record(run_with_services):
    async def scenario(h):
        submission = FileSubmission(filename="broken.mp4", size_bytes=1024, stream=_UnreadableStream())
        with pytest.raises(UploadFailed):
            await h.coordinator().ingest("user-1", submission)
        return await h.repository.count(), _stored_files(Path(h.settings.storage_root))

    count, stored = run_with_services(scenario)
    assert count == 0
    assert stored == []


def test_repository_failure_removes_uploaded_object(run_with_services):
    async def scenario(h):
        repository = _FailingRepository(h.repository.session, h.feed)
        with pytest.raises(RepositoryWriteFailed):
            await h.coordinator(repository=repository).ingest("user-1", _upload("orphan.mp4", b"bytes"))
        return _stored_files(Path(h.settings.storage_root))

    assert run_with_services(scenario) == []


def test_dispatch_failure_does_not_fail_ingestion(run_with_services):
    async def scenario(h):
        coordinator = h.coordinator(dispatch=_ExplodingDispatch())
        clip_id = await coordinator.ingest("user-1", UrlSubmission(url="https://vimeo.com/12345"))
        return await h.repository.get("user-1", clip_id)

    clip = run_with_services(scenario)
    assert clip is not None
    assert clip.status is ClipStatus.processing
    assert clip.title == "12345"


def test_upload_progress_is_reported(run_with_services):
    progress = UploadProgress(total_bytes=None)

    async def scenario(h):
        await h.coordinator().ingest("user-1", _upload("tiny.mkv", b"abc"), progress=progress)

    run_with_services(scenario)
    assert progress.total_bytes == 3
    assert progress.fraction == 1.0
