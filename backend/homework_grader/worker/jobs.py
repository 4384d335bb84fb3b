"""Job queue abstraction.

Delivery is at-least-once. A received job stays in flight until it is either
acked or failed; failing hands the job back to the queue, which re-delivers
it while ``attempts < max_attempts`` and dead-letters it otherwise.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from homework_grader.settings import settings

logger = logging.getLogger(__name__)


class JobName(str, Enum):
    GRADING = "grading"
    DEMO = "demo"


@dataclass(frozen=True)
class Job:
    id: str
    name: str
    data: dict[str, Any] = field(default_factory=dict)
    attempts: int = 0
    # Producers pass one to refuse a second job for the same entity while this one is pending.
    dedup_key: str | None = None
    # Opaque handle the backing queue needs to ack this delivery.
    receipt: str | None = field(default=None, compare=False, repr=False)

    def to_json(self) -> str:
        payload: dict[str, Any] = {"id": self.id, "name": self.name, "data": self.data, "attempts": self.attempts}
        if self.dedup_key is not None:
            payload["dedupKey"] = self.dedup_key
        return json.dumps(payload)

    @classmethod
    def from_json(cls, raw: str) -> "Job":
        payload = json.loads(raw)
        if not isinstance(payload, dict) or not payload.get("id") or not payload.get("name"):
            raise ValueError("Job message must contain id and name")
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise ValueError("Job data must be an object")
        dedup_key = payload.get("dedupKey")
        return cls(
            id=str(payload["id"]),
            name=str(payload["name"]),
            data=data,
            attempts=int(payload.get("attempts") or 0),
            dedup_key=str(dedup_key) if dedup_key else None,
            receipt=raw,
        )


def new_job(name: str, data: dict[str, Any] | None = None, dedup_key: str | None = None) -> Job:
    return Job(id=uuid4().hex, name=name, data=dict(data or {}), dedup_key=dedup_key)


class JobQueue(Protocol):
    async def enqueue(self, name: str, data: dict[str, Any], *, dedup_key: str | None = None) -> Job | None:
        """Publish a new job.

        Returns ``None`` without publishing when a job carrying the same
        ``dedup_key`` is still pending, i.e. neither acked nor dead-lettered.
        """

    async def receive(self, timeout: float) -> Job | None:
        """Wait up to ``timeout`` seconds for the next job."""

    async def ack(self, job: Job) -> None:
        """Mark a delivered job as done."""

    async def fail(self, job: Job, reason: str) -> None:
        """Return a delivered job to the queue's retry policy."""

    async def close(self) -> None:
        """Release connections."""


class InMemoryJobQueue:
    """asyncio-backed queue for tests and single-process runs."""

    def __init__(self, max_attempts: int = 1) -> None:
        self.max_attempts = max_attempts
        self._queue: asyncio.Queue[Job] = asyncio.Queue()
        self._pending: dict[str, str] = {}
        self.enqueued: list[Job] = []
        self.completed: list[Job] = []
        self.dead: list[tuple[Job, str]] = []

    async def enqueue(self, name: str, data: dict[str, Any], *, dedup_key: str | None = None) -> Job | None:
        if dedup_key is not None and dedup_key in self._pending:
            logger.info("Job for %s is already pending as %s", dedup_key, self._pending[dedup_key])
            return None
        job = new_job(name, data, dedup_key=dedup_key)
        if dedup_key is not None:
            self._pending[dedup_key] = job.id
        self.enqueued.append(job)
        await self._queue.put(job)
        return job

    def is_pending(self, dedup_key: str) -> bool:
        return dedup_key in self._pending

    async def receive(self, timeout: float) -> Job | None:
        try:
            job = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        return replace(job, attempts=job.attempts + 1)

    async def ack(self, job: Job) -> None:
        self._release(job)
        self.completed.append(job)
        self._queue.task_done()

    async def fail(self, job: Job, reason: str) -> None:
        if job.attempts < self.max_attempts:
            await self._queue.put(job)
        else:
            self._release(job)
            self.dead.append((job, reason))
        self._queue.task_done()

    def _release(self, job: Job) -> None:
        if job.dedup_key is not None and self._pending.get(job.dedup_key) == job.id:
            del self._pending[job.dedup_key]

    async def join(self) -> None:
        """Wait until every enqueued job has been acked or dead-lettered."""
        await self._queue.join()

    async def close(self) -> None:
        return None


class RedisJobQueue:
    """Reliable-list queue on Redis.

    ``BRPOPLPUSH`` moves a message into a processing list so a crashed worker
    does not lose it; ack removes it from there. A job published with a
    ``dedup_key`` owns ``<name>:pending:<key>`` (claimed with ``SET NX``)
    until it is acked or dead-lettered.
    """

    def __init__(self, redis_url: str, name: str = "grading", max_attempts: int = 1, client: Any = None) -> None:
        if client is None:
            from redis import asyncio as redis_asyncio

            client = redis_asyncio.from_url(redis_url, decode_responses=True)
        self._redis = client
        self.max_attempts = max_attempts
        self.jobs_key = f"{name}:jobs"
        self.processing_key = f"{name}:processing"
        self.dead_key = f"{name}:dead"
        self.pending_prefix = f"{name}:pending:"

    async def enqueue(self, name: str, data: dict[str, Any], *, dedup_key: str | None = None) -> Job | None:
        job = new_job(name, data, dedup_key=dedup_key)
        if dedup_key is not None:
            claimed = await self._redis.set(self.pending_prefix + dedup_key, job.id, nx=True)
            if not claimed:
                logger.info("Job for %s is already pending", dedup_key)
                return None
        await self._redis.lpush(self.jobs_key, job.to_json())
        return job

    async def receive(self, timeout: float) -> Job | None:
        raw = await self._redis.brpoplpush(self.jobs_key, self.processing_key, timeout=max(1, int(timeout)))
        if raw is None:
            return None
        try:
            job = Job.from_json(raw)
        except (ValueError, TypeError) as exc:
            logger.error("Dropping malformed job message to %s: %s", self.dead_key, exc)
            await self._redis.lrem(self.processing_key, 1, raw)
            await self._redis.lpush(self.dead_key, json.dumps({"raw": raw, "error": str(exc)}))
            return None
        return replace(job, attempts=job.attempts + 1)

    async def ack(self, job: Job) -> None:
        await self._redis.lrem(self.processing_key, 1, job.receipt)
        await self._release(job)

    async def fail(self, job: Job, reason: str) -> None:
        await self._redis.lrem(self.processing_key, 1, job.receipt)
        if job.attempts < self.max_attempts:
            await self._redis.lpush(self.jobs_key, job.to_json())
            return
        payload = json.loads(job.to_json())
        payload["error"] = reason
        await self._redis.lpush(self.dead_key, json.dumps(payload))
        await self._release(job)

    async def _release(self, job: Job) -> None:
        if job.dedup_key is not None:
            await self._redis.delete(self.pending_prefix + job.dedup_key)

    async def close(self) -> None:
        await self._redis.aclose()


_queue: JobQueue | None = None


def _create_queue() -> JobQueue:
    backend = settings.queue_backend.lower().strip()
    if backend == "redis":
        return RedisJobQueue(settings.redis_url, name=settings.queue_name, max_attempts=settings.job_max_attempts)
    if backend == "memory":
        return InMemoryJobQueue(max_attempts=settings.job_max_attempts)
    raise ValueError(f"Unknown queue backend '{settings.queue_backend}'. Use one of: memory, redis")


def get_job_queue() -> JobQueue:
    global _queue
    if _queue is None:
        _queue = _create_queue()
    return _queue


def reset_job_queue() -> None:
    global _queue
    _queue = None
