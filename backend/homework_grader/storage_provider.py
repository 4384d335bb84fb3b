"""Read access to submission page images in object storage."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Protocol

from homework_grader.settings import Settings, settings
from homework_grader.storage import ensure_dir, objects_dir


class BlobNotFoundError(LookupError):
    pass


class BlobStore(Protocol):
    async def get_bytes(self, key: str) -> bytes:
        """Return the raw bytes stored under ``key``."""

    async def put_bytes(self, key: str, data: bytes, content_type: str) -> dict[str, str]:
        """Store bytes under ``key``. Used by the upload flow and test fixtures."""


class LocalBlobStore:
    """Objects as plain files below ``root``; keys may not escape it."""

    def __init__(self, root: Path) -> None:
        self.root = ensure_dir(root)

    def path_for(self, key: str) -> Path:
        root = self.root.resolve()
        path = (root / key.lstrip("/")).resolve()
        if path == root or not path.is_relative_to(root):
            raise ValueError("Invalid storage key")
        return path

    async def get_bytes(self, key: str) -> bytes:
        path = self.path_for(key)
        if not path.is_file():
            raise BlobNotFoundError(f"Object not found: {key}")
        return await asyncio.to_thread(path.read_bytes)

    async def put_bytes(self, key: str, data: bytes, content_type: str) -> dict[str, str]:
        del content_type
        path = self.path_for(key)
        ensure_dir(path.parent)
        await asyncio.to_thread(path.write_bytes, data)
        return {"key": key}


class S3BlobStore:
    """Bucket-backed store for S3 and S3-compatible services."""

    def __init__(self, bucket: str, client: Any) -> None:
        self.bucket = bucket
        self._client = client

    @classmethod
    def from_settings(cls, config: Settings) -> "S3BlobStore":
        if not (config.s3_bucket and config.s3_access_key_id and config.s3_secret_access_key):
            raise RuntimeError("S3 storage backend requires S3_BUCKET, S3_ACCESS_KEY_ID, and S3_SECRET_ACCESS_KEY")
        import boto3

        client = boto3.client(
            "s3",
            endpoint_url=config.s3_endpoint_url,
            region_name=config.s3_region,
            aws_access_key_id=config.s3_access_key_id,
            aws_secret_access_key=config.s3_secret_access_key,
        )
        return cls(config.s3_bucket, client)

    def _read(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except self._client.exceptions.NoSuchKey as exc:
            raise BlobNotFoundError(f"Object not found: {key}") from exc
        return response["Body"].read()

    async def get_bytes(self, key: str) -> bytes:
        return await asyncio.to_thread(self._read, key)

    async def put_bytes(self, key: str, data: bytes, content_type: str) -> dict[str, str]:
        await asyncio.to_thread(self._client.put_object, Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        return {"key": key}


_blob_store: BlobStore | None = None


def _create_blob_store() -> BlobStore:
    backend = settings.storage_backend.lower().strip()
    if backend == "s3":
        return S3BlobStore.from_settings(settings)
    if backend == "local":
        return LocalBlobStore(objects_dir())
    raise ValueError(f"Unknown storage backend '{settings.storage_backend}'. Use one of: local, s3")


def get_blob_store() -> BlobStore:
    global _blob_store
    if _blob_store is None:
        _blob_store = _create_blob_store()
    return _blob_store


def reset_blob_store() -> None:
    global _blob_store
    _blob_store = None
