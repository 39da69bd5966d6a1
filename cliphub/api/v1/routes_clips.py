from __future__ import annotations

import asyncio
import os
from typing import AsyncIterator
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, WebSocket, status
from fastapi.responses import StreamingResponse

from cliphub.api import deps
from cliphub.api.errors import as_http_exception
from cliphub.core.auth import resolve_auth_context
from cliphub.core.config import Settings
from cliphub.core.errors import ClipHubError, DownloadFailed
from cliphub.core.logging import get_logger
from cliphub.ingest.source_resolver import FileSubmission, UrlSubmission
from cliphub.services.download_service import suggested_filename
from cliphub.services.realtime import ChangeFeed, Subscription

from . import schemas


router = APIRouter(prefix="/clips", tags=["clips"])
logger = get_logger(component="clips_api")

INGEST_ERRORS = schemas.error_responses(
    "file_too_large",
    "unsupported_extension",
    "malformed_url",
    "unsupported_platform",
    "upload_failed",
    "repository_write_failed",
)


def _accepted(clip_id: str, response: Response) -> schemas.ClipAcceptedResponse:
    location = f"/v1/clips/{clip_id}"
    response.headers["Location"] = location
    return schemas.ClipAcceptedResponse(clip_id=clip_id, location=location)


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    handle = upload.file
    position = handle.tell()
    handle.seek(0, os.SEEK_END)
    size = handle.tell()
    handle.seek(position)
    return size


@router.post(
    "/upload",
    response_model=schemas.ClipAcceptedResponse,
    status_code=status.HTTP_201_CREATED,
    responses=INGEST_ERRORS,
)
async def upload_clip(
    coordinator: deps.CoordinatorDependency,
    context: deps.AuthDependency,
    response: Response,
    file: UploadFile = File(...),
) -> schemas.ClipAcceptedResponse:
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="filename_required")

    submission = FileSubmission(filename=file.filename, size_bytes=_upload_size(file), stream=file.file)
    try:
        clip_id = await coordinator.ingest(context.user_id, submission)
    except ClipHubError as exc:
        raise as_http_exception(exc) from exc
    finally:
        await file.close()
    return _accepted(clip_id, response)


@router.post(
    "/import",
    response_model=schemas.ClipAcceptedResponse,
    status_code=status.HTTP_201_CREATED,
    responses=INGEST_ERRORS,
)
async def import_clip(
    payload: schemas.ImportRequest,
    coordinator: deps.CoordinatorDependency,
    context: deps.AuthDependency,
    response: Response,
) -> schemas.ClipAcceptedResponse:
    try:
        clip_id = await coordinator.ingest(context.user_id, UrlSubmission(url=payload.url))
    except ClipHubError as exc:
        raise as_http_exception(exc) from exc
    return _accepted(clip_id, response)


@router.get("", response_model=schemas.ClipListResponse)
async def list_clips(repository: deps.RepositoryDependency, context: deps.AuthDependency) -> schemas.ClipListResponse:
    clips = await repository.list_by_owner(context.user_id)
    return schemas.ClipListResponse(clips=[schemas.ClipResponse.model_validate(clip) for clip in clips])


@router.websocket("/stream")
async def stream_changes(websocket: WebSocket, settings: Settings = Depends(deps.get_app_settings)) -> None:
    """Push the owner's clip change events until the client disconnects.

    Browsers cannot set headers on WebSockets, so the session token may be
    passed as the ``token`` query parameter.
    """
    token = websocket.query_params.get("token") or _bearer_token(websocket.headers.get("authorization"))
    try:
        context = resolve_auth_context(token, settings)
    except HTTPException as exc:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(exc.detail))
        return

    feed: ChangeFeed = websocket.app.state.change_feed
    # Subscribe before accepting so no commit after the handshake is missed.
    async with feed.subscribe(context.user_id) as subscription:
        await websocket.accept()
        await _pump(websocket, subscription)


def _bearer_token(header: str | None) -> str | None:
    if not header:
        return None
    scheme, _, value = header.partition(" ")
    return value.strip() if scheme.lower() == "bearer" else None


async def _pump(websocket: WebSocket, subscription: Subscription) -> None:
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        while True:
            pending = asyncio.create_task(subscription.next_event())
            done, _ = await asyncio.wait({disconnected, pending}, return_when=asyncio.FIRST_COMPLETED)
            if disconnected in done:
                pending.cancel()
                return
            event = pending.result()
            if event is None:
                await websocket.close(code=status.WS_1001_GOING_AWAY)
                return
            await websocket.send_json(event.to_payload())
    finally:
        disconnected.cancel()


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.get("/{clip_id}", response_model=schemas.ClipResponse, responses=schemas.error_responses("clip_not_found"))
async def get_clip(
    clip_id: str,
    repository: deps.RepositoryDependency,
    context: deps.AuthDependency,
) -> schemas.ClipResponse:
    clip = await repository.get(context.user_id, clip_id)
    if not clip:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="clip_not_found")
    return schemas.ClipResponse.model_validate(clip)


@router.get(
    "/{clip_id}/download",
    response_class=StreamingResponse,
    responses=schemas.error_responses("clip_not_found", "clip_not_ready", "download_failed"),
)
async def download_clip(
    clip_id: str,
    repository: deps.RepositoryDependency,
    retriever: deps.RetrieverDependency,
    context: deps.AuthDependency,
) -> StreamingResponse:
    clip = await repository.get(context.user_id, clip_id)
    if not clip:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="clip_not_found")

    try:
        stream = retriever.download(clip)
        # Pull the first chunk so connection failures still map to an HTTP error.
        first = await anext(stream, b"")
    except ClipHubError as exc:
        raise as_http_exception(exc) from exc

    async def _body() -> AsyncIterator[bytes]:
        if first:
            yield first
        try:
            async for chunk in stream:
                yield chunk
        except DownloadFailed:
            logger.error("download_interrupted", clip_id=clip_id)
            raise

    filename = suggested_filename(clip)
    headers = {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"}
    return StreamingResponse(_body(), media_type="video/mp4", headers=headers)


__all__ = ["router"]
