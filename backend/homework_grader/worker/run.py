"""Grading worker entrypoint.

Run with ``python -m homework_grader.worker.run`` (or the
``homework-grader-worker`` script). SIGTERM/SIGINT stop the pool after the
jobs currently in flight have finished.
"""

from __future__ import annotations

import asyncio
import logging
import signal

from homework_grader.db import create_db_and_tables
from homework_grader.pipeline.grade import get_scorer
from homework_grader.pipeline.transcribe import get_ocr_provider
from homework_grader.settings import Settings, settings
from homework_grader.storage_provider import get_blob_store
from homework_grader.store import SQLModelSubmissionStore
from homework_grader.worker.jobs import get_job_queue
from homework_grader.worker.pool import WorkerPool
from homework_grader.worker.processor import GradingProcessor

logger = logging.getLogger("homework_grader.worker")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] [GRADING-WORKER] %(name)s: %(message)s",
    )


def build_processor(config: Settings) -> GradingProcessor:
    return GradingProcessor(
        store=SQLModelSubmissionStore(),
        blob_store=get_blob_store(),
        ocr=get_ocr_provider(config),
        scorer=get_scorer(config.scorer),
        demo_delay_seconds=config.demo_delay_ms / 1000,
    )


async def serve(config: Settings) -> None:
    create_db_and_tables()
    queue = get_job_queue()
    processor = build_processor(config)
    pool = WorkerPool(
        queue,
        processor,
        concurrency=config.worker_concurrency,
        poll_seconds=config.queue_poll_seconds,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _request_shutdown, pool, sig)
        except NotImplementedError:
            pass

    logger.info(
        "Grading worker starting | queue=%s backend=%s ocr=%s scorer=%s",
        config.queue_name,
        config.queue_backend,
        config.ocr_provider,
        config.scorer,
    )
    try:
        await pool.run()
    finally:
        await processor.close()
        await queue.close()


def _request_shutdown(pool: WorkerPool, sig: signal.Signals) -> None:
    logger.info("Received %s, finishing in-flight jobs before shutdown", sig.name)
    pool.stop()


def main() -> int:
    configure_logging(settings.log_level)
    asyncio.run(serve(settings))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
