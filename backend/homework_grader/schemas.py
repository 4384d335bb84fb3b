"""Grading result contract and API schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from homework_grader.models import SubmissionStatus

DEFAULT_DIMENSIONS = ("grammar", "vocabulary", "structure", "content", "coherence")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GradingErrorItem(CamelModel):
    type: str
    message: str
    original: str = ""
    suggestion: str = ""


class Suggestions(CamelModel):
    low: list[str] = Field(default_factory=list)
    mid: list[str] = Field(default_factory=list)
    high: list[str] = Field(default_factory=list)
    rewrite: str | None = None


class GradingResult(CamelModel):
    """Fixed result shape every scoring backend must produce."""

    total_score: float
    dimension_scores: dict[str, float] = Field(default_factory=dict)
    errors: list[GradingErrorItem] = Field(default_factory=list)
    suggestions: Suggestions = Field(default_factory=Suggestions)
    summary: str = ""
    next_steps: list[str] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class GradingJobData(CamelModel):
    submission_id: str


class DemoJobData(CamelModel):
    message: str | None = None
    requested_at: str | None = None


class DemoJobCreate(BaseModel):
    message: str | None = None


class JobRead(CamelModel):
    id: str
    name: str
    data: dict


class SubmissionImageRead(CamelModel):
    id: int
    object_key: str
    created_at: datetime


class SubmissionRead(CamelModel):
    id: str
    status: SubmissionStatus
    created_at: datetime
    updated_at: datetime
    images: list[SubmissionImageRead] = Field(default_factory=list)
    ocr_text: str | None = None
    grading_result: GradingResult | None = None
    total_score: float | None = None
    error_code: str | None = None
    error_message: str | None = None
