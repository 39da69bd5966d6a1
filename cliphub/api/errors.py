from __future__ import annotations

from fastapi import HTTPException, status

from cliphub.core.errors import ClipHubError

STATUS_BY_CODE: dict[str, int] = {
    "file_too_large": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    "unsupported_extension": status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    "malformed_url": status.HTTP_400_BAD_REQUEST,
    "unsupported_platform": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "upload_failed": status.HTTP_502_BAD_GATEWAY,
    "repository_write_failed": status.HTTP_503_SERVICE_UNAVAILABLE,
    "clip_not_found": status.HTTP_404_NOT_FOUND,
    "illegal_transition": status.HTTP_409_CONFLICT,
    "clip_not_ready": status.HTTP_409_CONFLICT,
    "download_failed": status.HTTP_502_BAD_GATEWAY,
}


def as_http_exception(exc: ClipHubError) -> HTTPException:
    return HTTPException(
        status_code=STATUS_BY_CODE.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=exc.code,
    )


__all__ = ["STATUS_BY_CODE", "as_http_exception"]
