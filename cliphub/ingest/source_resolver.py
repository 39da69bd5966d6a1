from __future__ import annotations

import re
from dataclasses import dataclass
from typing import BinaryIO, Optional, Union
from urllib.parse import urlparse

from cliphub.core.errors import FileTooLarge, MalformedUrl, UnsupportedExtension, UnsupportedPlatform
from cliphub.db.models import SourceKind

__all__ = [
    "MAX_UPLOAD_SIZE_BYTES",
    "ALLOWED_VIDEO_EXTENSIONS",
    "SUPPORTED_PLATFORM_HOSTS",
    "DEFAULT_TITLE",
    "MAX_TITLE_LENGTH",
    "FileSubmission",
    "UrlSubmission",
    "Submission",
    "ResolvedSource",
    "SourceResolver",
    "derive_title",
]

MAX_UPLOAD_SIZE_BYTES = 500 * 1024 * 1024
ALLOWED_VIDEO_EXTENSIONS: tuple[str, ...] = ("mp4", "mov", "avi", "mkv")
SUPPORTED_PLATFORM_HOSTS: tuple[str, ...] = (
    "youtube.com",
    "youtu.be",
    "twitch.tv",
    "kick.com",
    "vimeo.com",
    "dailymotion.com",
    "facebook.com",
    "instagram.com",
    "tiktok.com",
)
DEFAULT_TITLE = "Untitled Video"
MAX_TITLE_LENGTH = 512

_EXTENSION_RE = re.compile(r"\.([^/.]+)$")
_URL_SCHEMES = {"http", "https"}


@dataclass(slots=True)
class FileSubmission:
    """An uploaded file; ``stream`` is only read by the object store."""

    filename: str
    size_bytes: int
    stream: BinaryIO


@dataclass(slots=True)
class UrlSubmission:
    """A link to a video hosted on a third-party platform."""

    url: str


Submission = Union[FileSubmission, UrlSubmission]


@dataclass(slots=True)
class ResolvedSource:
    """A validated submission, ready to be stored.

    For uploads ``payload`` is the byte stream and ``filename``/``extension``
    are set; for imports ``payload`` is the normalised URL and ``host`` and
    ``caption`` are set.
    """

    kind: SourceKind
    payload: Union[BinaryIO, str]
    filename: Optional[str] = None
    extension: Optional[str] = None
    size_bytes: Optional[int] = None
    host: Optional[str] = None
    caption: Optional[str] = None

    @property
    def suggested_title(self) -> str:
        return derive_title(self)


def derive_title(source: ResolvedSource) -> str:
    """Return a human readable title for a resolved source.

    Fallback chain: filename without its extension, then the last non-empty
    URL path segment, then the URL host, then ``DEFAULT_TITLE``. The result
    is cut to ``MAX_TITLE_LENGTH`` characters.

    Args:
        source: The resolved submission.

    Returns:
        A non-empty title.
    """
    return _untrimmed_title(source)[:MAX_TITLE_LENGTH] or DEFAULT_TITLE


def _untrimmed_title(source: ResolvedSource) -> str:
    if source.kind is SourceKind.uploaded_file:
        return _EXTENSION_RE.sub("", source.filename or "")

    url = source.payload if isinstance(source.payload, str) else ""
    parsed = urlparse(url)
    segments = [segment for segment in parsed.path.split("/") if segment]
    if segments:
        return segments[-1]
    return source.host or parsed.hostname or ""


class SourceResolver:
    """Classify and validate submissions before they enter the pipeline.

    Resolution is pure: it never reads the upload stream and never touches
    storage or the database.
    """

    def __init__(
        self,
        *,
        max_size_bytes: int = MAX_UPLOAD_SIZE_BYTES,
        allowed_extensions: tuple[str, ...] = ALLOWED_VIDEO_EXTENSIONS,
        supported_hosts: tuple[str, ...] = SUPPORTED_PLATFORM_HOSTS,
    ) -> None:
        self.max_size_bytes = max_size_bytes
        self.allowed_extensions = tuple(ext.lower().lstrip(".") for ext in allowed_extensions)
        self.supported_hosts = tuple(host.lower() for host in supported_hosts)

    def resolve(self, submission: Submission) -> ResolvedSource:
        """Validate ``submission`` and derive what the clip record needs.

        Args:
            submission: A file upload or a remote URL.

        Returns:
            The resolved source.

        Raises:
            FileTooLarge: The upload exceeds ``max_size_bytes``.
            UnsupportedExtension: The upload is not an accepted video type.
            MalformedUrl: The link is not an absolute http(s) URL.
            UnsupportedPlatform: The link's host is not on the allow-list.
        """
        if isinstance(submission, FileSubmission):
            return self._resolve_file(submission)
        if isinstance(submission, UrlSubmission):
            return self._resolve_url(submission)
        raise TypeError(f"unsupported submission type: {type(submission).__name__}")

    def _resolve_file(self, submission: FileSubmission) -> ResolvedSource:
        if submission.size_bytes > self.max_size_bytes:
            raise FileTooLarge(submission.size_bytes, self.max_size_bytes)

        match = _EXTENSION_RE.search(submission.filename)
        extension = match.group(1).lower() if match else ""
        if extension not in self.allowed_extensions:
            raise UnsupportedExtension(submission.filename, self.allowed_extensions)

        return ResolvedSource(
            kind=SourceKind.uploaded_file,
            payload=submission.stream,
            filename=submission.filename,
            extension=extension,
            size_bytes=submission.size_bytes,
        )

    def _resolve_url(self, submission: UrlSubmission) -> ResolvedSource:
        url = submission.url.strip()
        if not url:
            raise MalformedUrl(submission.url)
        try:
            parsed = urlparse(url)
            host = parsed.hostname
        except ValueError as exc:
            raise MalformedUrl(submission.url) from exc
        if parsed.scheme.lower() not in _URL_SCHEMES or not host:
            raise MalformedUrl(submission.url)

        if not any(candidate in host for candidate in self.supported_hosts):
            raise UnsupportedPlatform(host)

        return ResolvedSource(
            kind=SourceKind.remote_url,
            payload=url,
            host=host,
            caption=f"Imported from {host}",
        )
