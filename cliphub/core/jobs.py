from __future__ import annotations

from abc import ABC, abstractmethod
from functools import lru_cache

from redis import Redis
from rq import Queue

from .config import Settings, get_settings
from .logging import get_logger


class BaseWorkerDispatch(ABC):
    """Hands freshly created clips to the external highlight worker."""

    @abstractmethod
    async def dispatch(self, clip_id: str, source_uri: str) -> None: ...


class NullWorkerDispatch(BaseWorkerDispatch):
    """Leaves discovery to the worker, which sweeps clips still ``processing``."""

    def __init__(self) -> None:
        self.logger = get_logger(component="worker_dispatch", backend="none")

    async def dispatch(self, clip_id: str, source_uri: str) -> None:
        self.logger.info("worker_dispatch_skipped", clip_id=clip_id)


class RQWorkerDispatch(BaseWorkerDispatch):
    def __init__(self, queue: Queue, task: str):
        self.queue = queue
        self.task = task
        self.logger = get_logger(component="worker_dispatch", backend="rq", queue=queue.name)

    async def dispatch(self, clip_id: str, source_uri: str) -> None:  # pragma: no cover - requires redis
        job = self.queue.enqueue(self.task, clip_id, source_uri)
        self.logger.info("worker_dispatch_enqueued", clip_id=clip_id, job_id=job.id)


def build_worker_dispatch(settings: Settings) -> BaseWorkerDispatch:
    backend = settings.worker_backend
    if backend == "none":
        return NullWorkerDispatch()
    if backend == "rq":  # pragma: no cover - requires redis
        connection = Redis.from_url(settings.redis_url)
        return RQWorkerDispatch(Queue(settings.worker_queue, connection=connection), settings.worker_task)
    raise ValueError(f"Unsupported worker backend: {settings.worker_backend}")


@lru_cache()
def get_worker_dispatch() -> BaseWorkerDispatch:
    return build_worker_dispatch(get_settings())


__all__ = [
    "BaseWorkerDispatch",
    "NullWorkerDispatch",
    "RQWorkerDispatch",
    "build_worker_dispatch",
    "get_worker_dispatch",
]
