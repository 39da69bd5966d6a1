from __future__ import annotations

import pytest

from cliphub.core.config import get_settings
from cliphub.core.jobs import NullWorkerDispatch, build_worker_dispatch
from cliphub.core.logging import level_from_name


def test_defaults_match_submission_rules():
    settings = get_settings()
    assert settings.max_upload_size_bytes == 500 * 1024 * 1024
    assert settings.allowed_video_extensions == ("mp4", "mov", "avi", "mkv")
    assert "youtube.com" in settings.supported_platform_hosts
    assert settings.worker_backend == "none"


def test_short_aliases_are_honoured(monkeypatch):
    monkeypatch.setenv("CLIPHUB_WORKER_BACKEND", "none")
    monkeypatch.setenv("CLIPHUB_WORKER", "rq")
    get_settings.cache_clear()
    assert get_settings().worker_backend == "rq"


def test_production_requires_real_secret(monkeypatch):
    monkeypatch.setenv("CLIPHUB_ENV", "production")
    monkeypatch.setenv("CLIPHUB_ENVIRONMENT", "production")
    monkeypatch.delenv("CLIPHUB_JWT_SECRET")
    get_settings.cache_clear()
    with pytest.raises(ValueError):
        get_settings()


def test_null_dispatch_is_default():
    assert isinstance(build_worker_dispatch(get_settings()), NullWorkerDispatch)


@pytest.mark.parametrize("name, expected", [("debug", 10), ("WARNING", 30), ("nonsense", 20), (None, 20)])
def test_level_from_name(name, expected):
    assert level_from_name(name) == expected
