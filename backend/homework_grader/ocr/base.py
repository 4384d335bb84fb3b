"""OCR provider interfaces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass
class OCRResult:
    text: str
    confidence: float | None = None


@dataclass
class OCRHealth:
    ok: bool
    status: int
    latency_ms: int
    reason: str = ""


class OCRProvider(Protocol):
    """OCR provider protocol."""

    name: str

    async def extract_text(self, image_bytes: bytes) -> OCRResult:
        """Extract text from one page image."""

    async def close(self) -> None:
        """Release network resources held between pages."""
