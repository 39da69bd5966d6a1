"""Domain entities, rules and errors reused by the API, services and CLI."""

from cliphub.db.models import ClipStatus, SourceKind
from cliphub.core.errors import (
    ClipHubError,
    ClipNotFound,
    ClipNotReady,
    DownloadFailed,
    FileTooLarge,
    IllegalTransition,
    MalformedUrl,
    RepositoryWriteFailed,
    SubmissionRejected,
    UnsupportedExtension,
    UnsupportedPlatform,
    UploadFailed,
)
from cliphub.ingest.source_resolver import (
    FileSubmission,
    ResolvedSource,
    SourceResolver,
    Submission,
    UrlSubmission,
    derive_title,
)
from cliphub.ingest.state_machine import WorkerUpdate, can_transition, ensure_transition, validate_worker_update

__all__ = [
    "ClipStatus",
    "SourceKind",
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
    "FileSubmission",
    "UrlSubmission",
    "Submission",
    "ResolvedSource",
    "SourceResolver",
    "derive_title",
    "WorkerUpdate",
    "can_transition",
    "ensure_transition",
    "validate_worker_update",
]
