from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Literal

from redis import Redis
from rq import Queue

from .config import get_settings

TaskName = Literal["ingest", "sweep"]


def _task_callable(task: TaskName):
    from adreel.workers import tasks

    if task == "ingest":
        return tasks.run_ingest
    if task == "sweep":
        return tasks.run_sweep
    raise ValueError(f"Unknown task: {task}")


class BaseJobBackend(ABC):
    """Dispatches pipeline tasks (discovery runs, scheduler sweeps) outside the request."""

    @abstractmethod
    async def enqueue(self, task: TaskName, **kwargs: Any) -> str | None: ...


class ImmediateJobBackend(BaseJobBackend):
    async def enqueue(self, task: TaskName, **kwargs: Any) -> str | None:
        await asyncio.to_thread(_task_callable(task), **kwargs)
        return None


class RQJobBackend(BaseJobBackend):
    def __init__(self, queue: Queue):
        self.queue = queue

    async def enqueue(self, task: TaskName, **kwargs: Any) -> str | None:  # pragma: no cover - exercised via worker
        job = self.queue.enqueue(_task_callable(task), **kwargs)
        return job.id


@lru_cache()
def get_job_backend() -> BaseJobBackend:
    settings = get_settings()
    backend = settings.normalized_job_backend
    if backend == "immediate":
        return ImmediateJobBackend()
    if backend == "rq":  # pragma: no cover - requires redis
        connection = Redis.from_url(settings.redis_url)
        return RQJobBackend(Queue("adreel-tasks", connection=connection))
    raise ValueError(f"Unsupported job backend: {settings.job_queue_backend}")


__all__ = ["BaseJobBackend", "ImmediateJobBackend", "RQJobBackend", "TaskName", "get_job_backend"]
