from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _reset_singletons() -> None:
    from homework_grader.storage_provider import reset_blob_store
    from homework_grader.worker.jobs import reset_job_queue

    reset_blob_store()
    reset_job_queue()
    yield
    reset_blob_store()
    reset_job_queue()


@pytest.fixture
def sqlite_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point settings and the shared engine at a fresh SQLite file."""
    from sqlmodel import SQLModel, create_engine

    from homework_grader import db
    from homework_grader.settings import settings

    monkeypatch.setattr(settings, "data_dir", str(tmp_path / "data"))
    monkeypatch.setattr(settings, "sqlite_path", str(tmp_path / "test.db"))
    engine = create_engine(settings.sqlite_url, connect_args={"check_same_thread": False})
    monkeypatch.setattr(db, "engine", engine)
    SQLModel.metadata.create_all(engine)
    return engine
