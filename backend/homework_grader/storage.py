"""Filesystem storage utilities."""

from __future__ import annotations

from pathlib import Path

from homework_grader.settings import settings


def ensure_dir(path: Path) -> Path:
    """Create directory if needed and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def objects_dir() -> Path:
    return settings.data_path / "objects"
