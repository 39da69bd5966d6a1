from __future__ import annotations

import pytest

from cliphub.domain import ClipStatus, IllegalTransition, WorkerUpdate, can_transition, validate_worker_update


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (ClipStatus.processing, ClipStatus.completed, True),
        (ClipStatus.processing, ClipStatus.failed, True),
        (ClipStatus.processing, ClipStatus.processing, False),
        (ClipStatus.completed, ClipStatus.processing, False),
        (ClipStatus.completed, ClipStatus.failed, False),
        (ClipStatus.failed, ClipStatus.completed, False),
        (ClipStatus.failed, ClipStatus.processing, False),
    ],
)
def test_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_only_processing_is_non_terminal():
    assert not ClipStatus.processing.is_terminal
    assert ClipStatus.completed.is_terminal
    assert ClipStatus.failed.is_terminal


def test_completion_with_artifact_is_valid():
    update = WorkerUpdate(status=ClipStatus.completed, artifact_uri="https://cdn.example/clip.mp4", aspect_ratio="9:16")
    validate_worker_update(ClipStatus.processing, update)


def test_metadata_only_update_keeps_clip_processing():
    update = WorkerUpdate(duration_seconds=12.5)
    validate_worker_update(ClipStatus.processing, update)
    assert update.metadata() == {"duration_seconds": 12.5}


def test_terminal_clips_are_frozen():
    with pytest.raises(IllegalTransition):
        validate_worker_update(ClipStatus.completed, WorkerUpdate(thumbnail_uri="https://cdn.example/t.jpg"))
    with pytest.raises(IllegalTransition):
        validate_worker_update(ClipStatus.failed, WorkerUpdate(status=ClipStatus.completed))


def test_empty_update_is_rejected():
    with pytest.raises(IllegalTransition):
        validate_worker_update(ClipStatus.processing, WorkerUpdate())


def test_artifact_requires_completion():
    with pytest.raises(IllegalTransition):
        validate_worker_update(ClipStatus.processing, WorkerUpdate(artifact_uri="https://cdn.example/clip.mp4"))
    with pytest.raises(IllegalTransition):
        validate_worker_update(
            ClipStatus.processing,
            WorkerUpdate(status=ClipStatus.failed, artifact_uri="https://cdn.example/clip.mp4"),
        )


def test_failure_reason_requires_failed_status():
    with pytest.raises(IllegalTransition):
        validate_worker_update(ClipStatus.processing, WorkerUpdate(failure_reason="decoder crashed"))
    validate_worker_update(ClipStatus.processing, WorkerUpdate(status=ClipStatus.failed, failure_reason="decoder crashed"))


def test_processing_to_processing_is_rejected():
    with pytest.raises(IllegalTransition):
        validate_worker_update(ClipStatus.processing, WorkerUpdate(status=ClipStatus.processing))
