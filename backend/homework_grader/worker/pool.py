"""Bounded-concurrency consumer pool."""

from __future__ import annotations

import asyncio
import logging

from homework_grader.worker.jobs import Job, JobQueue
from homework_grader.worker.processor import GradingProcessor

logger = logging.getLogger(__name__)

QUEUE_ERROR_BACKOFF_SECONDS = 1.0
MAX_QUEUE_ERROR_BACKOFF_SECONDS = 30.0


class WorkerPool:
    """Runs up to ``concurrency`` jobs at once, one per consumer task.

    Each consumer receives a job, processes it to completion and then acks
    it. A job whose processing raised is handed back through
    ``queue.fail`` so the queue's own policy decides about redelivery.
    """

    def __init__(
        self,
        queue: JobQueue,
        processor: GradingProcessor,
        concurrency: int = 5,
        poll_seconds: float = 5.0,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._queue = queue
        self._processor = processor
        self.concurrency = concurrency
        self._poll_seconds = poll_seconds
        self._stopping = asyncio.Event()
        self.active = 0
        self.peak_active = 0
        self.processed = 0
        self.failed = 0

    def stop(self) -> None:
        """Let consumers finish their current job and exit."""
        self._stopping.set()

    async def run(self) -> None:
        logger.info("Worker pool started | concurrency=%d", self.concurrency)
        consumers = [asyncio.create_task(self._consume(index), name=f"grading-worker-{index}") for index in range(self.concurrency)]
        try:
            await asyncio.gather(*consumers)
        finally:
            for consumer in consumers:
                consumer.cancel()
            await asyncio.gather(*consumers, return_exceptions=True)
            logger.info("Worker pool stopped | processed=%d failed=%d", self.processed, self.failed)

    async def _consume(self, index: int) -> None:
        consecutive_errors = 0
        while not self._stopping.is_set():
            try:
                job = await self._queue.receive(timeout=self._poll_seconds)
                if job is None:
                    consecutive_errors = 0
                    continue
                await self._handle(job, index)
                consecutive_errors = 0
            except Exception:  # noqa: BLE001
                consecutive_errors += 1
                logger.exception("Queue error in worker %d (consecutive=%d)", index, consecutive_errors)
                await asyncio.sleep(min(QUEUE_ERROR_BACKOFF_SECONDS * consecutive_errors, MAX_QUEUE_ERROR_BACKOFF_SECONDS))

    async def _handle(self, job: Job, index: int) -> None:
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        logger.info(
            "Job received | worker=%d job_id=%s name=%s attempt=%d",
            index,
            job.id,
            job.name,
            job.attempts,
            extra={"job_id": job.id, "job_name": job.name, "attempt": job.attempts},
        )
        try:
            await self._processor.process(job)
        except Exception as exc:  # noqa: BLE001
            self.failed += 1
            logger.warning("Job %s failed, returning it to the queue: %s", job.id, exc, extra={"job_id": job.id})
            await self._queue.fail(job, str(exc) or exc.__class__.__name__)
        else:
            self.processed += 1
            await self._queue.ack(job)
        finally:
            self.active -= 1
