from __future__ import annotations

import asyncio
import base64
import json
from datetime import datetime, timedelta, timezone
from io import BytesIO

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image, ImageDraw
from sqlmodel import Session

from homework_grader.grading.mock import MockScorer
from homework_grader.main import app
from homework_grader.models import Submission, SubmissionImage
from homework_grader.ocr.http_client import HttpOCRClient
from homework_grader.storage_provider import get_blob_store
from homework_grader.store import SQLModelSubmissionStore
from homework_grader.worker.jobs import InMemoryJobQueue, get_job_queue
from homework_grader.worker.pool import WorkerPool
from homework_grader.worker.processor import GradingProcessor


def make_image_bytes(text: str) -> bytes:
    image = Image.new("RGB", (400, 200), color="white")
    draw = ImageDraw.Draw(image)
    draw.text((10, 80), text, fill="black")
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def fake_ocr_service(pages: dict[bytes, httpx.Response]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        image = base64.b64decode(json.loads(request.content)["image_base64"])
        return pages[image]

    return httpx.MockTransport(handler)


def upload_submission(engine, submission_id: str, images: list[bytes]) -> None:
    provider = get_blob_store()
    base = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    with Session(engine) as session:
        session.add(Submission(id=submission_id))
        for number, image in enumerate(images, 1):
            key = f"{submission_id}/page-{number}.png"
            asyncio.run(provider.put_bytes(key, image, "image/png"))
            session.add(SubmissionImage(submission_id=submission_id, object_key=key, created_at=base + timedelta(seconds=number)))
        session.commit()


def run_worker(queue: InMemoryJobQueue, transport: httpx.MockTransport) -> WorkerPool:
    processor = GradingProcessor(
        store=SQLModelSubmissionStore(),
        blob_store=get_blob_store(),
        ocr=HttpOCRClient("http://ocr.test", transport=transport),
        scorer=MockScorer(),
        demo_delay_seconds=0.01,
    )
    pool = WorkerPool(queue, processor, concurrency=2, poll_seconds=0.05)

    async def drain() -> None:
        runner = asyncio.create_task(pool.run())
        await asyncio.wait_for(queue.join(), timeout=10)
        pool.stop()
        await asyncio.wait_for(runner, timeout=10)

    asyncio.run(drain())
    return pool


@pytest.fixture
def queue():
    queue = InMemoryJobQueue()
    app.dependency_overrides[get_job_queue] = lambda: queue
    yield queue
    app.dependency_overrides.pop(get_job_queue, None)


def test_end_to_end_grading(sqlite_db, queue: InMemoryJobQueue) -> None:
    page_1 = make_image_bytes("Hello")
    page_2 = make_image_bytes("World")
    upload_submission(sqlite_db, "S1", [page_1, page_2])
    transport = fake_ocr_service(
        {
            page_1: httpx.Response(200, json={"text": "Hello", "confidence": 0.9}),
            page_2: httpx.Response(200, json={"text": "World"}),
        }
    )

    with TestClient(app) as client:
        assert client.post("/submissions/S1/enqueue").status_code == 202

        pool = run_worker(queue, transport)

        payload = client.get("/submissions/S1").json()

    assert pool.processed == 1
    assert payload["status"] == "DONE"
    assert payload["ocrText"] == "Hello\n\nWorld"
    assert payload["totalScore"] == 85
    assert payload["gradingResult"]["summary"] == "Mock grading summary."
    assert [image["objectKey"] for image in payload["images"]] == ["S1/page-1.png", "S1/page-2.png"]


def test_end_to_end_ocr_failure(sqlite_db, queue: InMemoryJobQueue) -> None:
    page_1 = make_image_bytes("Hello")
    page_2 = make_image_bytes("World")
    upload_submission(sqlite_db, "S1", [page_1, page_2])
    transport = fake_ocr_service(
        {
            page_1: httpx.Response(200, json={"text": "Hello"}),
            page_2: httpx.Response(500, text="boom"),
        }
    )

    with TestClient(app) as client:
        assert client.post("/submissions/S1/enqueue").status_code == 202

        pool = run_worker(queue, transport)

        payload = client.get("/submissions/S1").json()
        again = client.post("/submissions/S1/enqueue")

    assert pool.failed == 1
    assert [reason for _, reason in queue.dead] == ["OCR service error: 500 boom"]
    assert payload["status"] == "FAILED"
    assert payload["errorCode"] == "OCR_ERROR"
    assert payload["errorMessage"] == "OCR service error: 500 boom"
    assert "gradingResult" not in payload
    assert again.status_code == 409
