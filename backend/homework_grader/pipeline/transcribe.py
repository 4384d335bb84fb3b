"""OCR provider factory/dispatcher."""

from homework_grader.ocr.base import OCRProvider
from homework_grader.ocr.http_client import HttpOCRClient
from homework_grader.ocr.stub import StubOCRProvider
from homework_grader.settings import Settings


def get_ocr_provider(settings: Settings) -> OCRProvider:
    provider = settings.ocr_provider.lower()
    if provider == "http":
        return HttpOCRClient(
            base_url=settings.ocr_service_url,
            timeout_seconds=settings.ocr_timeout_seconds,
            preprocess=settings.ocr_preprocess,
        )
    if provider == "stub":
        return StubOCRProvider()
    raise ValueError(f"Unknown OCR provider '{settings.ocr_provider}'. Use one of: http, stub")
