"""Self-test job endpoint."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from homework_grader.schemas import DemoJobCreate, JobRead
from homework_grader.worker.jobs import JobName, JobQueue, get_job_queue

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/demo", response_model=JobRead, status_code=202)
async def enqueue_demo(payload: DemoJobCreate, queue: JobQueue = Depends(get_job_queue)) -> JobRead:
    data = {
        "message": payload.message or "",
        "requestedAt": datetime.now(timezone.utc).isoformat(),
    }
    job = await queue.enqueue(JobName.DEMO.value, data)
    return JobRead(id=job.id, name=job.name, data=job.data)
