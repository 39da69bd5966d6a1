from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cliphub.api.errors import STATUS_BY_CODE
from cliphub.db.models import ClipStatus, SourceKind


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ImportRequest(BaseModel):
    url: str = Field(..., json_schema_extra={"example": "https://youtube.com/watch?v=abc123"})


class ClipAcceptedResponse(BaseModel):
    clip_id: str
    status: ClipStatus = ClipStatus.processing
    location: str


class ClipResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    source_kind: SourceKind
    original_source_uri: str
    artifact_uri: str = Field(description="Only points at a finished clip once status is completed.")
    title: str
    caption: Optional[str] = None
    status: ClipStatus
    duration_seconds: Optional[float] = None
    thumbnail_uri: Optional[str] = None
    aspect_ratio: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ClipListResponse(BaseModel):
    clips: list[ClipResponse]


class WorkerUpdateRequest(BaseModel):
    status: Optional[ClipStatus] = None
    artifact_uri: Optional[str] = None
    duration_seconds: Optional[float] = Field(default=None, ge=0)
    thumbnail_uri: Optional[str] = None
    aspect_ratio: Optional[str] = Field(default=None, max_length=16, json_schema_extra={"example": "9:16"})
    failure_reason: Optional[str] = None

    @model_validator(mode="after")
    def _not_empty(self) -> "WorkerUpdateRequest":
        if not self.model_dump(exclude_none=True):
            raise ValueError("update must set at least one field")
        return self


class ErrorResponse(BaseModel):
    detail: str = Field(description="Stable snake_case error code, e.g. file_too_large.")


def error_responses(*codes: str) -> dict[int | str, dict[str, Any]]:
    """OpenAPI ``responses`` entries for the error codes a route can return."""
    grouped: dict[int, list[str]] = {}
    for code in codes:
        grouped.setdefault(STATUS_BY_CODE[code], []).append(code)
    return {
        status_code: {"model": ErrorResponse, "description": " or ".join(names)}
        for status_code, names in grouped.items()
    }


__all__ = [
    "HealthResponse",
    "ImportRequest",
    "ClipAcceptedResponse",
    "ClipResponse",
    "ClipListResponse",
    "WorkerUpdateRequest",
    "ErrorResponse",
    "error_responses",
]
