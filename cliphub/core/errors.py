"""Error taxonomy shared by ingestion, lifecycle and retrieval."""

from __future__ import annotations


class ClipHubError(Exception):
    """Base class; ``code`` is the stable identifier surfaced to API clients."""

    code = "cliphub_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


class SubmissionRejected(ClipHubError):
    """Caller input was refused before any state was created."""

    code = "submission_rejected"


class FileTooLarge(SubmissionRejected):
    code = "file_too_large"

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        super().__init__(f"file of {size_bytes} bytes exceeds the {limit_bytes} byte limit")


class UnsupportedExtension(SubmissionRejected):
    code = "unsupported_extension"

    def __init__(self, filename: str, allowed: tuple[str, ...]) -> None:
        self.filename = filename
        self.allowed = allowed
        super().__init__(f"{filename!r} is not one of: {', '.join(allowed)}")


class MalformedUrl(SubmissionRejected):
    code = "malformed_url"

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"not a valid http(s) URL: {url!r}")


class UnsupportedPlatform(SubmissionRejected):
    code = "unsupported_platform"

    def __init__(self, host: str) -> None:
        self.host = host
        super().__init__(f"imports from {host!r} are not supported")


class UploadFailed(ClipHubError):
    code = "upload_failed"


class RepositoryWriteFailed(ClipHubError):
    code = "repository_write_failed"


class ClipNotFound(ClipHubError):
    code = "clip_not_found"

    def __init__(self, clip_id: str) -> None:
        self.clip_id = clip_id
        super().__init__(f"clip {clip_id} does not exist")


class IllegalTransition(ClipHubError):
    code = "illegal_transition"


class ClipNotReady(ClipHubError):
    code = "clip_not_ready"

    def __init__(self, clip_id: str, status: str) -> None:
        self.clip_id = clip_id
        self.status = status
        super().__init__(f"clip {clip_id} is {status}, not completed")


class DownloadFailed(ClipHubError):
    code = "download_failed"


__all__ = [
    "ClipHubError",
    "SubmissionRejected",
    "FileTooLarge",
    "UnsupportedExtension",
    "MalformedUrl",
    "UnsupportedPlatform",
    "UploadFailed",
    "RepositoryWriteFailed",
    "ClipNotFound",
    "IllegalTransition",
    "ClipNotReady",
    "DownloadFailed",
]
