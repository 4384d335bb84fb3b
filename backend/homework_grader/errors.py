"""Failure taxonomy for submission processing."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCode(str, Enum):
    SUBMISSION_NOT_FOUND = "SUBMISSION_NOT_FOUND"
    OCR_TIMEOUT = "OCR_TIMEOUT"
    OCR_EMPTY = "OCR_EMPTY"
    OCR_ERROR = "OCR_ERROR"
    PROCESSING_ERROR = "PROCESSING_ERROR"
    UNKNOWN = "UNKNOWN"


@dataclass
class GradingError(Exception):
    """A processing failure with a code that is stored on the submission."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class OCRError(GradingError):
    status_code: int | None = None
    body: str = ""


def classify_error(exc: BaseException) -> tuple[ErrorCode, str]:
    """Map any exception raised while processing to a stored code and message."""
    if isinstance(exc, GradingError):
        return exc.code, exc.message
    if isinstance(exc, Exception):
        return ErrorCode.PROCESSING_ERROR, str(exc) or exc.__class__.__name__
    return ErrorCode.UNKNOWN, "Unknown error"
