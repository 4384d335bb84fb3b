"""SQLModel ORM models for submissions and their page images."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Return timezone-aware UTC now timestamp."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class SubmissionStatus(str, Enum):
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    FAILED = "FAILED"


class Submission(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    status: SubmissionStatus = Field(default=SubmissionStatus.QUEUED, index=True)
    ocr_text: Optional[str] = None
    grading_json: Optional[str] = None
    total_score: Optional[float] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SubmissionImage(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    submission_id: str = Field(foreign_key="submission.id", index=True)
    object_key: str
    created_at: datetime = Field(default_factory=utcnow)
