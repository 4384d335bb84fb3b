"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_LOCAL_DATA_DIR = BASE_DIR / "data"
DEFAULT_CONTAINER_DATA_DIR = Path("/tmp/homework-grader")


TRUTHY_VALUES = {"1", "true", "yes", "on"}


def _is_truthy(value: str | None) -> bool:
    return bool(value and value.strip().lower() in TRUTHY_VALUES)


def _running_in_container() -> bool:
    return _is_truthy(os.getenv("HOMEWORK_GRADER_CONTAINER"))


def _default_data_dir() -> str:
    if _running_in_container():
        return str(DEFAULT_CONTAINER_DATA_DIR)
    return str(DEFAULT_LOCAL_DATA_DIR)


class Settings(BaseSettings):
    """Runtime configuration for the grading API and worker."""

    model_config = SettingsConfigDict(env_prefix="HOMEWORK_GRADER_", extra="ignore", populate_by_name=True)

    app_name: str = "Homework Grader"
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("HOMEWORK_GRADER_LOG_LEVEL", "LOG_LEVEL"))
    data_dir: str = Field(
        default_factory=_default_data_dir,
        validation_alias=AliasChoices("HOMEWORK_GRADER_DATA_DIR", "DATA_DIR"),
    )
    sqlite_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("HOMEWORK_GRADER_SQLITE_PATH", "SQLITE_PATH"),
    )

    # OCR service
    ocr_provider: str = Field(default="http", validation_alias=AliasChoices("HOMEWORK_GRADER_OCR_PROVIDER", "OCR_PROVIDER"))
    ocr_service_url: str = Field(
        default="http://localhost:8000",
        validation_alias=AliasChoices("HOMEWORK_GRADER_OCR_SERVICE_URL", "OCR_SERVICE_URL", "OCR_BASE_URL"),
    )
    ocr_timeout_ms: int = Field(default=10_000, gt=0, validation_alias=AliasChoices("HOMEWORK_GRADER_OCR_TIMEOUT_MS", "OCR_TIMEOUT_MS"))
    ocr_preprocess: bool = Field(default=False, validation_alias=AliasChoices("HOMEWORK_GRADER_OCR_PREPROCESS", "OCR_PREPROCESS"))

    # Scoring backend
    scorer: str = Field(default="mock", validation_alias=AliasChoices("HOMEWORK_GRADER_SCORER", "SCORER"))

    # Worker and queue
    worker_concurrency: int = Field(default=5, ge=1, validation_alias=AliasChoices("HOMEWORK_GRADER_WORKER_CONCURRENCY", "WORKER_CONCURRENCY"))
    queue_backend: str = Field(default="memory", validation_alias=AliasChoices("HOMEWORK_GRADER_QUEUE_BACKEND", "QUEUE_BACKEND"))
    queue_name: str = Field(default="grading", validation_alias=AliasChoices("HOMEWORK_GRADER_QUEUE_NAME", "QUEUE_NAME"))
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias=AliasChoices("HOMEWORK_GRADER_REDIS_URL", "REDIS_URL"))
    job_max_attempts: int = Field(default=1, ge=1, validation_alias=AliasChoices("HOMEWORK_GRADER_JOB_MAX_ATTEMPTS", "JOB_MAX_ATTEMPTS"))
    queue_poll_seconds: float = Field(default=5.0, gt=0)
    demo_delay_ms: int = Field(default=250, ge=0)

    # Object storage
    storage_backend: str = Field(default="local", validation_alias=AliasChoices("HOMEWORK_GRADER_STORAGE_BACKEND", "STORAGE_BACKEND"))
    s3_bucket: str | None = Field(default=None, validation_alias=AliasChoices("HOMEWORK_GRADER_S3_BUCKET", "S3_BUCKET"))
    s3_access_key_id: str | None = Field(default=None, validation_alias=AliasChoices("HOMEWORK_GRADER_S3_ACCESS_KEY_ID", "S3_ACCESS_KEY_ID"))
    s3_secret_access_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("HOMEWORK_GRADER_S3_SECRET_ACCESS_KEY", "S3_SECRET_ACCESS_KEY"),
    )
    s3_endpoint_url: str | None = Field(default=None, validation_alias=AliasChoices("HOMEWORK_GRADER_S3_ENDPOINT_URL", "S3_ENDPOINT_URL"))
    s3_region: str | None = Field(default=None, validation_alias=AliasChoices("HOMEWORK_GRADER_S3_REGION", "S3_REGION"))

    @model_validator(mode="after")
    def _set_sqlite_path(self) -> "Settings":
        if not self.sqlite_path:
            self.sqlite_path = str(Path(self.data_dir) / "homework_grader.db")
        return self

    @property
    def sqlite_url(self) -> str:
        return f"sqlite:///{self.sqlite_path}"

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    @property
    def ocr_timeout_seconds(self) -> float:
        return self.ocr_timeout_ms / 1000


settings = Settings()
