"""Scorer interface."""

from __future__ import annotations

from typing import Protocol

from homework_grader.schemas import GradingResult


class Scorer(Protocol):
    """Any scoring backend: rule engine, remote model call, or fixture."""

    name: str

    def score(self, text: str) -> GradingResult:
        """Score merged OCR text."""
