from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from cliphub.core.errors import IllegalTransition
from cliphub.db.models import ClipStatus

__all__ = ["TRANSITIONS", "WorkerUpdate", "can_transition", "ensure_transition", "validate_worker_update"]

# processing is the only non-terminal state; nothing ever returns to it.
TRANSITIONS: dict[ClipStatus, frozenset[ClipStatus]] = {
    ClipStatus.processing: frozenset({ClipStatus.completed, ClipStatus.failed}),
    ClipStatus.completed: frozenset(),
    ClipStatus.failed: frozenset(),
}

_METADATA_FIELDS = ("duration_seconds", "thumbnail_uri", "aspect_ratio")


@dataclass(slots=True)
class WorkerUpdate:
    """Fields the external highlight worker is allowed to write."""

    status: Optional[ClipStatus] = None
    artifact_uri: Optional[str] = None
    duration_seconds: Optional[float] = None
    thumbnail_uri: Optional[str] = None
    aspect_ratio: Optional[str] = None
    failure_reason: Optional[str] = None

    def metadata(self) -> dict[str, object]:
        return {name: getattr(self, name) for name in _METADATA_FIELDS if getattr(self, name) is not None}

    def is_empty(self) -> bool:
        return (
            self.status is None
            and self.artifact_uri is None
            and self.failure_reason is None
            and not self.metadata()
        )


def can_transition(current: ClipStatus, target: ClipStatus) -> bool:
    return target in TRANSITIONS[current]


def ensure_transition(current: ClipStatus, target: ClipStatus) -> None:
    if not can_transition(current, target):
        raise IllegalTransition(f"{current.value} -> {target.value} is not allowed")


def validate_worker_update(current: ClipStatus, update: WorkerUpdate) -> None:
    """Check a worker update against the clip's current status.

    Terminal clips are frozen. ``artifact_uri`` only travels with
    ``completed`` and ``failure_reason`` only with ``failed``.
    """
    if current.is_terminal:
        raise IllegalTransition(f"clip is already {current.value}")
    if update.is_empty():
        raise IllegalTransition("update carries no fields")
    if update.status is not None:
        ensure_transition(current, update.status)
    if update.artifact_uri is not None and update.status is not ClipStatus.completed:
        raise IllegalTransition("artifact_uri can only be set when completing a clip")
    if update.failure_reason is not None and update.status is not ClipStatus.failed:
        raise IllegalTransition("failure_reason can only be set when failing a clip")
