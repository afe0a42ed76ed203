"""Object storage for rendered artifacts and assembled bundles.

``S3Storage`` talks to S3 (or MinIO / LocalStack through ``endpoint_url``)
with boto3. ``LocalStorage`` writes under a local directory and is used
when uploads are blocked (development, tests).
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import unquote, urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from curriculum_bundles.core.errors import StorageError
from curriculum_bundles.core.logging import get_logger

logger = get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
JPEG_CONTENT_TYPE = "image/jpeg"


@runtime_checkable
class ObjectStorage(Protocol):
    def upload(self, key: str, data: bytes, content_type: str | None = None) -> str:
        """Store ``data`` under ``key``; return its public URL."""
        ...

    def read_back(self, url: str) -> bytes:
        """Fetch the bytes behind a URL previously returned by ``upload``."""
        ...

    def url_for(self, key: str) -> str:
        """Public URL of ``key`` (object or folder prefix)."""
        ...


class S3Storage:
    """S3-compatible storage backend."""

    def __init__(
        self,
        bucket: str,
        *,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        client=None,
    ):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url

        if client is None:
            client_kwargs = {
                "service_name": "s3",
                "region_name": region,
                "config": Config(signature_version="s3v4"),
            }
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            client = boto3.client(**client_kwargs)
        self.client = client

    def url_for(self, key: str) -> str:
        key = key.lstrip("/")
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def upload(self, key: str, data: bytes, content_type: str | None = None) -> str:
        key = key.lstrip("/")
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                CacheControl="public, max-age=0, must-revalidate",
                **extra,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"S3 upload failed: {e}", cause=e).with_context(key=key)
        logger.info("s3_object_written", bucket=self.bucket, key=key, size=len(data))
        return self.url_for(key)

    def _key_from_url(self, url: str) -> str:
        parsed = urlparse(url)
        path = unquote(parsed.path.lstrip("/"))
        # path-style URLs carry the bucket as the first segment
        if self.endpoint_url and path.startswith(f"{self.bucket}/"):
            path = path[len(self.bucket) + 1 :]
        return path

    def read_back(self, url: str) -> bytes:
        key = self._key_from_url(url)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "NoSuchKey":
                raise StorageError(f"S3 object not found: {key}", retryable=False, cause=e)
            raise StorageError(f"S3 service error: {e}", cause=e).with_context(key=key)
        except BotoCoreError as e:
            raise StorageError(f"S3 read failed: {e}", cause=e).with_context(key=key)
        return response["Body"].read()


class LocalStorage:
    """Filesystem storage under ``root``; URLs are ``file://`` paths."""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root / key.lstrip("/")

    def url_for(self, key: str) -> str:
        return self._path(key).resolve().as_uri()

    def upload(self, key: str, data: bytes, content_type: str | None = None) -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug("local_object_written", path=str(path), size=len(data))
        return self.url_for(key)

    def read_back(self, url: str) -> bytes:
        path = Path(unquote(urlparse(url).path))
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise StorageError(f"Local object not found: {path}", retryable=False, cause=e)


__all__ = [
    "JPEG_CONTENT_TYPE",
    "PDF_CONTENT_TYPE",
    "LocalStorage",
    "ObjectStorage",
    "S3Storage",
]
