"""FastAPI application: health checks, submission reads and the job producer endpoints."""

import logging
from pathlib import Path
from uuid import uuid4

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from homework_grader import db
from homework_grader.ocr.http_client import HttpOCRClient
from homework_grader.pipeline.transcribe import get_ocr_provider
from homework_grader.routers.jobs import router as jobs_router
from homework_grader.routers.submissions import router as submissions_router
from homework_grader.settings import settings
from homework_grader.storage import ensure_dir

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.include_router(submissions_router)
app.include_router(jobs_router)


@app.on_event("startup")
def on_startup() -> None:
    ensure_dir(settings.data_path)
    db.create_db_and_tables()


def _storage_writable(data_dir: Path) -> bool:
    probe = data_dir / f".health_probe_{uuid4().hex}"
    try:
        ensure_dir(data_dir)
        probe.write_text("ok", encoding="utf-8")
        probe.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Data dir %s is not writable: %s", data_dir, exc)
        return False
    return True


def _database_reachable() -> bool:
    try:
        with Session(db.engine) as session:
            session.exec(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Database health check failed: %s", exc)
        return False
    return True


async def _ocr_status() -> dict[str, object]:
    provider = get_ocr_provider(settings)
    if not isinstance(provider, HttpOCRClient):
        return {"provider": provider.name, "ok": True}
    try:
        probe = await provider.check_health()
    finally:
        await provider.close()
    return {
        "provider": provider.name,
        "ok": probe.ok,
        "status": probe.status,
        "latencyMs": probe.latency_ms,
        "reason": probe.reason,
    }


@app.get("/health", tags=["meta"])
def health() -> dict[str, bool]:
    return {"ok": True}


@app.get("/health/deep", tags=["meta"])
async def deep_health() -> dict[str, object]:
    return {
        "ok": True,
        "storage_writable": _storage_writable(settings.data_path),
        "data_dir": str(settings.data_path),
        "db_ok": _database_reachable(),
        "ocr": await _ocr_status(),
    }
