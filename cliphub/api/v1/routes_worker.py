from __future__ import annotations

from fastapi import APIRouter, Depends

from cliphub.api import deps
from cliphub.api.errors import as_http_exception
from cliphub.core.errors import ClipHubError
from cliphub.ingest.state_machine import WorkerUpdate

from . import schemas


# Write path for the external highlight worker; ingestion never finalises clips itself.
router = APIRouter(prefix="/worker", tags=["worker"], dependencies=[Depends(deps.require_scope("worker"))])


@router.patch(
    "/clips/{clip_id}",
    response_model=schemas.ClipResponse,
    summary="Report worker progress or outcome",
    responses=schemas.error_responses("clip_not_found", "illegal_transition", "repository_write_failed"),
)
async def update_clip(
    clip_id: str,
    payload: schemas.WorkerUpdateRequest,
    repository: deps.RepositoryDependency,
) -> schemas.ClipResponse:
    update = WorkerUpdate(**payload.model_dump())
    try:
        clip = await repository.apply_worker_update(clip_id, update)
    except ClipHubError as exc:
        raise as_http_exception(exc) from exc
    return schemas.ClipResponse.model_validate(clip)


__all__ = ["router"]
