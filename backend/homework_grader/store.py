"""Submission store used by the grading worker.

The worker never handles live ORM rows. It reads immutable snapshots and
writes partial field updates, optionally guarded by the statuses the record
is allowed to be in at write time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Collection
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import update as sql_update
from sqlmodel import Session, select

from homework_grader import db
from homework_grader.models import Submission, SubmissionImage, SubmissionStatus, utcnow
from homework_grader.schemas import GradingResult

UPDATABLE_FIELDS = frozenset({"status", "ocr_text", "grading_result", "total_score", "error_code", "error_message"})


@dataclass(frozen=True)
class ImageRef:
    id: int
    object_key: str
    created_at: datetime


@dataclass(frozen=True)
class SubmissionSnapshot:
    id: str
    status: SubmissionStatus
    images: tuple[ImageRef, ...] = ()
    ocr_text: str | None = None
    grading_result: GradingResult | None = None
    total_score: float | None = None
    error_code: str | None = None
    error_message: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


class SubmissionStore(Protocol):
    async def get(self, submission_id: str) -> SubmissionSnapshot | None:
        """Load a submission with its images in ascending creation order."""

    async def update(
        self,
        submission_id: str,
        *,
        expected_status: Collection[SubmissionStatus] | None = None,
        **fields: Any,
    ) -> bool:
        """Apply a partial update. Returns False when no record was changed."""


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown submission fields: {sorted(unknown)}")


def _ordered(images: list[ImageRef]) -> tuple[ImageRef, ...]:
    return tuple(sorted(images, key=lambda image: (image.created_at, image.id)))


class SQLModelSubmissionStore:
    """Relational store backed by the SQLModel engine in ``homework_grader.db``."""

    def _get(self, submission_id: str) -> SubmissionSnapshot | None:
        with Session(db.engine) as session:
            row = session.get(Submission, submission_id)
            if row is None:
                return None
            images = session.exec(
                select(SubmissionImage)
                .where(SubmissionImage.submission_id == submission_id)
                .order_by(SubmissionImage.created_at, SubmissionImage.id)
            ).all()
            grading_result = GradingResult.model_validate_json(row.grading_json) if row.grading_json else None
            return SubmissionSnapshot(
                id=row.id,
                status=SubmissionStatus(row.status),
                images=tuple(ImageRef(id=i.id, object_key=i.object_key, created_at=i.created_at) for i in images),
                ocr_text=row.ocr_text,
                grading_result=grading_result,
                total_score=row.total_score,
                error_code=row.error_code,
                error_message=row.error_message,
                created_at=row.created_at,
                updated_at=row.updated_at,
            )

    def _update(
        self,
        submission_id: str,
        expected_status: Collection[SubmissionStatus] | None,
        fields: dict[str, Any],
    ) -> bool:
        values = dict(fields)
        if "grading_result" in values:
            result = values.pop("grading_result")
            values["grading_json"] = result.to_json() if result is not None else None
        values["updated_at"] = utcnow()

        statement = sql_update(Submission).where(Submission.id == submission_id)
        if expected_status is not None:
            statement = statement.where(Submission.status.in_(list(expected_status)))
        statement = statement.values(**values)

        with Session(db.engine) as session:
            result = session.exec(statement)
            session.commit()
            return result.rowcount > 0

    async def get(self, submission_id: str) -> SubmissionSnapshot | None:
        return await asyncio.to_thread(self._get, submission_id)

    async def update(
        self,
        submission_id: str,
        *,
        expected_status: Collection[SubmissionStatus] | None = None,
        **fields: Any,
    ) -> bool:
        _check_fields(fields)
        return await asyncio.to_thread(self._update, submission_id, expected_status, fields)


class InMemorySubmissionStore:
    """Dictionary-backed store for tests and single-process demos."""

    def __init__(self) -> None:
        self._records: dict[str, SubmissionSnapshot] = {}
        self.reads: list[str] = []
        self.writes: list[tuple[str, dict[str, Any]]] = []

    def add(self, submission_id: str, object_keys: list[str] | None = None, **fields: Any) -> SubmissionSnapshot:
        images = [
            ImageRef(id=index, object_key=key, created_at=utcnow())
            for index, key in enumerate(object_keys or [], 1)
        ]
        record = SubmissionSnapshot(
            id=submission_id,
            status=fields.pop("status", SubmissionStatus.QUEUED),
            images=_ordered(images),
            **fields,
        )
        self._records[submission_id] = record
        return record

    def add_images(self, submission_id: str, images: list[ImageRef]) -> None:
        record = self._records[submission_id]
        self._records[submission_id] = replace(record, images=_ordered(list(record.images) + images))

    async def get(self, submission_id: str) -> SubmissionSnapshot | None:
        self.reads.append(submission_id)
        return self._records.get(submission_id)

    async def update(
        self,
        submission_id: str,
        *,
        expected_status: Collection[SubmissionStatus] | None = None,
        **fields: Any,
    ) -> bool:
        _check_fields(fields)
        self.writes.append((submission_id, dict(fields)))
        record = self._records.get(submission_id)
        if record is None:
            return False
        if expected_status is not None and record.status not in expected_status:
            return False
        self._records[submission_id] = replace(record, updated_at=utcnow(), **fields)
        return True

