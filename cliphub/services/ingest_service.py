from __future__ import annotations

from uuid import uuid4

from cliphub.core.errors import RepositoryWriteFailed
from cliphub.core.jobs import BaseWorkerDispatch
from cliphub.core.logging import get_logger
from cliphub.core.storage import ObjectStore, UploadBlob, UploadProgress
from cliphub.db.models import Clip, ClipStatus, SourceKind
from cliphub.ingest.source_resolver import ResolvedSource, SourceResolver, Submission, derive_title

from .clip_repository import ClipRepository


class IngestionCoordinator:
    """Turn a raw submission into a ``processing`` clip record.

    Steps run strictly in order: resolve, upload (files only), create,
    dispatch. A rejection or upload failure leaves nothing behind, and a
    failed insert removes the object it just uploaded.
    """

    def __init__(
        self,
        resolver: SourceResolver,
        store: ObjectStore,
        repository: ClipRepository,
        dispatch: BaseWorkerDispatch,
    ):
        self.resolver = resolver
        self.store = store
        self.repository = repository
        self.dispatch = dispatch
        self.logger = get_logger(component="ingestion_coordinator")

    async def ingest(self, owner_id: str, submission: Submission, *, progress: UploadProgress | None = None) -> str:
        source = self.resolver.resolve(submission)
        log = self.logger.bind(owner_id=owner_id, source_kind=source.kind.value)

        placeholder_uri = await self._placeholder_uri(owner_id, source, progress)

        clip = Clip(
            id=uuid4().hex,
            owner_id=owner_id,
            source_kind=source.kind,
            original_source_uri=placeholder_uri,
            artifact_uri=placeholder_uri,
            title=derive_title(source),
            caption=source.caption,
            status=ClipStatus.processing,
        )
        try:
            clip_id = await self.repository.create(clip)
        except RepositoryWriteFailed:
            if source.kind is SourceKind.uploaded_file:
                await self._discard_upload(placeholder_uri, log)
            raise

        log.info("clip_ingested", clip_id=clip_id, title=clip.title)
        await self._notify_worker(clip_id, placeholder_uri, log)
        return clip_id

    async def _placeholder_uri(
        self,
        owner_id: str,
        source: ResolvedSource,
        progress: UploadProgress | None,
    ) -> str:
        if source.kind is SourceKind.remote_url:
            assert isinstance(source.payload, str)
            return source.payload

        assert not isinstance(source.payload, str) and source.extension
        blob = UploadBlob(stream=source.payload, extension=source.extension, size_bytes=source.size_bytes)
        return await self.store.upload(owner_id, blob, progress=progress)

    async def _discard_upload(self, uri: str, log) -> None:
        try:
            await self.store.delete(uri)
        except (OSError, ValueError) as exc:
            log.error("orphaned_upload", uri=uri, error=str(exc))

    async def _notify_worker(self, clip_id: str, source_uri: str, log) -> None:
        # The record is already valid; a lost hand-off is picked up by the worker's sweep.
        try:
            await self.dispatch.dispatch(clip_id, source_uri)
        except Exception:
            log.exception("worker_dispatch_failed", clip_id=clip_id)


__all__ = ["IngestionCoordinator"]
