"""Per-job state machine driver for submission grading."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from homework_grader.errors import ErrorCode, GradingError, classify_error
from homework_grader.grading.base import Scorer
from homework_grader.models import SubmissionStatus
from homework_grader.ocr.base import OCRProvider
from homework_grader.retry import OCR_RETRY_POLICY, RetryPolicy, call_with_retry
from homework_grader.schemas import DemoJobData, GradingJobData
from homework_grader.storage_provider import BlobStore
from homework_grader.store import SubmissionSnapshot, SubmissionStore
from homework_grader.worker.jobs import Job, JobName

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

TEXT_SEPARATOR = "\n\n"

# QUEUED -> PROCESSING -> DONE | FAILED. PROCESSING may be claimed again when a
# previous delivery died before recording an outcome.
CLAIMABLE_STATUSES = frozenset({SubmissionStatus.QUEUED, SubmissionStatus.PROCESSING})
OWNED_STATUSES = frozenset({SubmissionStatus.PROCESSING})


def merge_page_texts(texts: list[str]) -> str:
    """Join stripped non-empty page texts in page order, separated by a blank line."""
    return TEXT_SEPARATOR.join(text.strip() for text in texts if text and text.strip()).strip()


def _parse_payload(model: type[PayloadT], job: Job) -> PayloadT | None:
    try:
        return model.model_validate(job.data)
    except ValidationError as exc:
        logger.warning("Invalid %s payload for job %s: %s", job.name, job.id, exc, extra={"job_id": job.id})
        return None


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class GradingProcessor:
    """Turns one dequeued job into a terminal submission state.

    Dispatch is closed over ``JobName``: grading jobs run the OCR and scoring
    pipeline, demo jobs are a side-effect-free self test, and any other job
    name is acknowledged as a no-op.
    """

    def __init__(
        self,
        *,
        store: SubmissionStore,
        blob_store: BlobStore,
        ocr: OCRProvider,
        scorer: Scorer,
        ocr_retry_policy: RetryPolicy = OCR_RETRY_POLICY,
        demo_delay_seconds: float = 0.25,
    ) -> None:
        self._store = store
        self._blob_store = blob_store
        self._ocr = ocr
        self._scorer = scorer
        self._ocr_retry_policy = ocr_retry_policy
        self._demo_delay_seconds = demo_delay_seconds

    async def close(self) -> None:
        await self._ocr.close()

    async def process(self, job: Job) -> dict[str, Any] | None:
        if job.name == JobName.GRADING.value:
            grading = _parse_payload(GradingJobData, job)
            if grading is not None and grading.submission_id:
                return await self.handle_grading(job, grading.submission_id)
        elif job.name == JobName.DEMO.value:
            demo = _parse_payload(DemoJobData, job)
            if demo is not None:
                return await self.handle_demo(job, demo)

        logger.warning("Unhandled job %s (%s)", job.id, job.name, extra={"job_id": job.id, "job_name": job.name})
        return None

    async def handle_demo(self, job: Job, data: DemoJobData) -> dict[str, Any]:
        started = time.perf_counter()
        logger.info("Processing demo job %s message=%s", job.id, data.message or "", extra={"job_id": job.id})
        await asyncio.sleep(self._demo_delay_seconds)
        duration_ms = _elapsed_ms(started)
        logger.info("Completed demo job %s in %dms", job.id, duration_ms, extra={"job_id": job.id, "duration_ms": duration_ms})
        return {"durationMs": duration_ms, "message": data.message, "requestedAt": data.requested_at}

    async def handle_grading(self, job: Job, submission_id: str) -> dict[str, Any] | None:
        started = time.perf_counter()
        context = {"job_id": job.id, "submission_id": submission_id}

        try:
            claimed = await self._store.update(
                submission_id,
                expected_status=CLAIMABLE_STATUSES,
                status=SubmissionStatus.PROCESSING,
            )
            submission = await self._store.get(submission_id)
            if submission is None:
                raise GradingError(ErrorCode.SUBMISSION_NOT_FOUND, "Submission not found")
            if not claimed:
                # Already DONE or FAILED: a redelivered job must not reopen it.
                logger.warning(
                    "Skipping grading job %s: submission %s is already %s",
                    job.id,
                    submission_id,
                    submission.status.value,
                    extra={**context, "status": submission.status.value},
                )
                return None

            merged_text = await self._extract_text(submission, context)
            result = await asyncio.to_thread(self._scorer.score, merged_text)

            stored = await self._store.update(
                submission_id,
                expected_status=OWNED_STATUSES,
                status=SubmissionStatus.DONE,
                ocr_text=merged_text,
                grading_result=result,
                total_score=result.total_score,
                error_code=None,
                error_message=None,
            )
            if not stored:
                raise GradingError(ErrorCode.PROCESSING_ERROR, "Submission left PROCESSING while it was being graded")
        except Exception as exc:
            await self._record_failure(job, submission_id, exc, context)
            raise

        duration_ms = _elapsed_ms(started)
        logger.info(
            "Grading job %s done in %dms",
            job.id,
            duration_ms,
            extra={**context, "duration_ms": duration_ms, "total_score": result.total_score},
        )
        return {"submissionId": submission_id, "durationMs": duration_ms, "totalScore": result.total_score}

    async def _extract_text(self, submission: SubmissionSnapshot, context: dict[str, Any]) -> str:
        texts: list[str] = []
        # Sequential on purpose: page order defines concatenation order.
        for page_number, image in enumerate(submission.images, 1):
            image_bytes = await self._blob_store.get_bytes(image.object_key)
            ocr_result = await call_with_retry(
                self._ocr_retry_policy,
                self._ocr.extract_text,
                image_bytes,
                context={**context, "page_number": page_number},
            )
            texts.append(ocr_result.text)

        merged_text = merge_page_texts(texts)
        if not merged_text:
            raise GradingError(ErrorCode.OCR_EMPTY, "OCR returned empty text")
        return merged_text

    async def _record_failure(self, job: Job, submission_id: str, exc: Exception, context: dict[str, Any]) -> None:
        code, message = classify_error(exc)
        logger.error(
            "Grading job %s failed: %s",
            job.id,
            message,
            extra={**context, "error_code": code.value},
        )
        try:
            stored = await self._store.update(
                submission_id,
                expected_status=OWNED_STATUSES,
                status=SubmissionStatus.FAILED,
                error_code=code.value,
                error_message=message,
                grading_result=None,
                total_score=None,
            )
        except Exception as update_exc:  # noqa: BLE001
            logger.error("Failed to update submission %s: %s", submission_id, update_exc, extra=context)
            return
        if not stored:
            logger.error("Failed to update submission %s: record is not PROCESSING", submission_id, extra=context)
