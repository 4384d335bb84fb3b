"""HTTP client for the external OCR service."""

from __future__ import annotations

import asyncio
import base64
import logging
import time

import httpx

from homework_grader.errors import ErrorCode, OCRError
from homework_grader.ocr.base import OCRHealth, OCRResult

logger = logging.getLogger(__name__)


class HttpOCRClient:
    """Sends one bounded-time ``POST /ocr`` request per page image.

    ``timeout_seconds`` is a deadline for the whole exchange, from connect
    to the last body byte. Failures are classified into ``OCR_TIMEOUT``,
    ``OCR_ERROR`` and ``OCR_EMPTY``. The client never retries on its own;
    callers decide whether a failure is worth another attempt.

    The underlying ``httpx.AsyncClient`` is created on first use and reused
    for later pages, so it belongs to the event loop that first used it.
    Call ``close()`` when done.
    """

    name = "http"

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        preprocess: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.preprocess = preprocess
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
                trust_env=False,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def extract_text(self, image_bytes: bytes) -> OCRResult:
        payload = {
            "image_base64": base64.b64encode(image_bytes).decode("utf-8"),
            "preprocess": self.preprocess,
        }
        started = time.perf_counter()
        try:
            async with asyncio.timeout(self.timeout_seconds):
                response = await self._get_client().post("/ocr", json=payload)
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise OCRError(ErrorCode.OCR_TIMEOUT, "OCR request timed out") from exc
        except httpx.HTTPError as exc:
            raise OCRError(ErrorCode.OCR_ERROR, f"OCR request failed: {exc}") from exc

        if not response.is_success:
            body = response.text
            raise OCRError(
                ErrorCode.OCR_ERROR,
                f"OCR service error: {response.status_code} {body}".strip(),
                status_code=response.status_code,
                body=body,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise OCRError(
                ErrorCode.OCR_ERROR,
                "OCR service returned a malformed body",
                status_code=response.status_code,
                body=response.text,
            ) from exc

        if not isinstance(data, dict) or not isinstance(data.get("text") or "", str):
            raise OCRError(
                ErrorCode.OCR_ERROR,
                "OCR service returned a malformed body",
                status_code=response.status_code,
                body=response.text,
            )

        text = data.get("text") or ""
        if not text.strip():
            raise OCRError(ErrorCode.OCR_EMPTY, "OCR returned empty text", status_code=response.status_code)

        confidence = data.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            confidence = None

        logger.debug(
            "ocr request complete",
            extra={"stage": "ocr", "ocr_ms": int((time.perf_counter() - started) * 1000), "chars": len(text)},
        )
        return OCRResult(text=text, confidence=float(confidence) if confidence is not None else None)

    async def check_health(self) -> OCRHealth:
        """Probe ``GET /health`` on the OCR service. Never raises."""
        started = time.perf_counter()
        try:
            async with asyncio.timeout(self.timeout_seconds):
                response = await self._get_client().get("/health")
        except TimeoutError:
            latency_ms = int((time.perf_counter() - started) * 1000)
            return OCRHealth(ok=False, status=0, latency_ms=latency_ms, reason="OCR health check timed out")
        except httpx.HTTPError as exc:
            latency_ms = int((time.perf_counter() - started) * 1000)
            return OCRHealth(ok=False, status=0, latency_ms=latency_ms, reason=str(exc) or exc.__class__.__name__)

        latency_ms = int((time.perf_counter() - started) * 1000)
        if not response.is_success:
            return OCRHealth(ok=False, status=response.status_code, latency_ms=latency_ms, reason=response.text)
        return OCRHealth(ok=True, status=response.status_code, latency_ms=latency_ms)
