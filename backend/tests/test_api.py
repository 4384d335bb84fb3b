from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from homework_grader.grading.mock import MockScorer
from homework_grader.main import app
from homework_grader.models import Submission, SubmissionImage, SubmissionStatus
from homework_grader.worker.jobs import InMemoryJobQueue, get_job_queue


@pytest.fixture
def queue():
    queue = InMemoryJobQueue()
    app.dependency_overrides[get_job_queue] = lambda: queue
    yield queue
    app.dependency_overrides.pop(get_job_queue, None)


def _add_submission(engine, submission_id: str, **fields) -> None:
    base = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    with Session(engine) as session:
        session.add(Submission(id=submission_id, **fields))
        session.add(SubmissionImage(submission_id=submission_id, object_key=f"{submission_id}/b.png", created_at=base + timedelta(seconds=2)))
        session.add(SubmissionImage(submission_id=submission_id, object_key=f"{submission_id}/a.png", created_at=base + timedelta(seconds=1)))
        session.commit()


def test_queued_submission_has_no_result_fields(sqlite_db) -> None:
    _add_submission(sqlite_db, "S1")

    with TestClient(app) as client:
        response = client.get("/submissions/S1")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "QUEUED"
    assert [image["objectKey"] for image in payload["images"]] == ["S1/a.png", "S1/b.png"]
    for key in ("ocrText", "gradingResult", "totalScore", "errorCode", "errorMessage"):
        assert key not in payload


def test_done_submission_exposes_grading_result(sqlite_db) -> None:
    result = MockScorer().score("Hello")
    _add_submission(
        sqlite_db,
        "S1",
        status=SubmissionStatus.DONE,
        ocr_text="Hello\n\nWorld",
        grading_json=result.to_json(),
        total_score=result.total_score,
    )

    with TestClient(app) as client:
        payload = client.get("/submissions/S1").json()

    assert payload["status"] == "DONE"
    assert payload["ocrText"] == "Hello\n\nWorld"
    assert payload["totalScore"] == 85
    assert payload["gradingResult"]["totalScore"] == 85
    assert payload["gradingResult"]["dimensionScores"]["grammar"] == 17
    assert payload["gradingResult"]["nextSteps"] == ["Rewrite introduction", "Add one more example"]
    assert "errorCode" not in payload


def test_failed_submission_exposes_error_only(sqlite_db) -> None:
    _add_submission(
        sqlite_db,
        "S1",
        status=SubmissionStatus.FAILED,
        error_code="OCR_TIMEOUT",
        error_message="OCR request timed out",
    )

    with TestClient(app) as client:
        payload = client.get("/submissions/S1").json()

    assert payload["status"] == "FAILED"
    assert payload["errorCode"] == "OCR_TIMEOUT"
    assert payload["errorMessage"] == "OCR request timed out"
    assert "gradingResult" not in payload
    assert "totalScore" not in payload


def test_missing_submission_is_404(sqlite_db) -> None:
    with TestClient(app) as client:
        response = client.get("/submissions/nope")

    assert response.status_code == 404


def test_enqueue_queued_submission(sqlite_db, queue: InMemoryJobQueue) -> None:
    _add_submission(sqlite_db, "S1")

    with TestClient(app) as client:
        response = client.post("/submissions/S1/enqueue")

    assert response.status_code == 202
    payload = response.json()
    assert payload["name"] == "grading"
    assert payload["data"] == {"submissionId": "S1"}
    assert [job.id for job in queue.enqueued] == [payload["id"]]


def test_second_enqueue_while_job_is_pending_is_409(sqlite_db, queue: InMemoryJobQueue) -> None:
    _add_submission(sqlite_db, "S1")

    with TestClient(app) as client:
        first = client.post("/submissions/S1/enqueue")
        second = client.post("/submissions/S1/enqueue")

    assert first.status_code == 202
    assert second.status_code == 409
    assert second.json()["detail"] == "Submission already has a pending grading job"
    assert [job.id for job in queue.enqueued] == [first.json()["id"]]
    assert queue.enqueued[0].dedup_key == "submission:S1"


@pytest.mark.parametrize("status", [SubmissionStatus.PROCESSING, SubmissionStatus.DONE, SubmissionStatus.FAILED])
def test_enqueue_rejects_submission_that_is_not_queued(sqlite_db, queue: InMemoryJobQueue, status: SubmissionStatus) -> None:
    _add_submission(sqlite_db, "S1", status=status)

    with TestClient(app) as client:
        response = client.post("/submissions/S1/enqueue")

    assert response.status_code == 409
    assert queue.enqueued == []


def test_enqueue_missing_submission_is_404(sqlite_db, queue: InMemoryJobQueue) -> None:
    with TestClient(app) as client:
        response = client.post("/submissions/nope/enqueue")

    assert response.status_code == 404
    assert queue.enqueued == []


def test_enqueue_demo_job(sqlite_db, queue: InMemoryJobQueue) -> None:
    with TestClient(app) as client:
        response = client.post("/jobs/demo", json={"message": "ping"})

    assert response.status_code == 202
    payload = response.json()
    assert payload["name"] == "demo"
    assert payload["data"]["message"] == "ping"
    assert datetime.fromisoformat(payload["data"]["requestedAt"]).tzinfo is not None
    assert queue.enqueued[0].name == "demo"
