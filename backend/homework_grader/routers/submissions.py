"""Submission result and enqueue endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from homework_grader.db import get_session
from homework_grader.models import Submission, SubmissionImage, SubmissionStatus
from homework_grader.schemas import GradingResult, JobRead, SubmissionImageRead, SubmissionRead
from homework_grader.worker.jobs import JobName, JobQueue, get_job_queue

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.get("/{submission_id}", response_model=SubmissionRead, response_model_exclude_none=True)
def get_submission(submission_id: str, session: Session = Depends(get_session)) -> SubmissionRead:
    submission = session.get(Submission, submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    images = session.exec(
        select(SubmissionImage)
        .where(SubmissionImage.submission_id == submission_id)
        .order_by(SubmissionImage.created_at, SubmissionImage.id)
    ).all()

    read = SubmissionRead(
        id=submission.id,
        status=submission.status,
        created_at=submission.created_at,
        updated_at=submission.updated_at,
        images=[SubmissionImageRead(id=i.id, object_key=i.object_key, created_at=i.created_at) for i in images],
    )
    if submission.status == SubmissionStatus.DONE:
        read.ocr_text = submission.ocr_text
        read.grading_result = GradingResult.model_validate_json(submission.grading_json) if submission.grading_json else None
        read.total_score = submission.total_score
    elif submission.status == SubmissionStatus.FAILED:
        read.error_code = submission.error_code
        read.error_message = submission.error_message
    return read


@router.post("/{submission_id}/enqueue", response_model=JobRead, status_code=202)
async def enqueue_grading(
    submission_id: str,
    session: Session = Depends(get_session),
    queue: JobQueue = Depends(get_job_queue),
) -> JobRead:
    submission = session.get(Submission, submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    # Only a QUEUED record may be handed to the worker, with at most one job pending per submission.
    if submission.status != SubmissionStatus.QUEUED:
        raise HTTPException(status_code=409, detail=f"Submission is {submission.status.value}, expected QUEUED")

    job = await queue.enqueue(
        JobName.GRADING.value,
        {"submissionId": submission_id},
        dedup_key=f"submission:{submission_id}",
    )
    if job is None:
        raise HTTPException(status_code=409, detail="Submission already has a pending grading job")
    return JobRead(id=job.id, name=job.name, data=job.data)
