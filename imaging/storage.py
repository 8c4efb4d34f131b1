"""Storage backend abstraction for image bytes.

This module provides the interface the endpoints use to read source and
environment images and to write processed outputs. Two backends exist:

- ``LocalStorage`` keeps objects as files under a base directory. It
  reports neither an ETag nor a URL.
- ``S3Storage`` talks to any S3-compatible object store through boto3.
  Objects are written with a long-lived immutable ``Cache-Control`` and
  their URL is the configured base URL joined with the key.

boto3 is blocking, so S3 calls run in a thread via ``asyncio.to_thread``
and never occupy the compute pool.
"""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urljoin

import aiofiles
import aiofiles.os
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import ObjectNotFoundError, StorageError
from .models import ImageType

LOGGER = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=31536000, immutable"
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass(frozen=True)
class PutObjectOutput:
    etag: str
    url: str
    size: int


class Storage(ABC):
    @abstractmethod
    async def download_object(self, key: str) -> bytes:
        """Return the bytes stored under ``key``.

        Raises:
            ObjectNotFoundError: If no object exists under ``key``.
            StorageError: On any other backend failure.
        """

    @abstractmethod
    async def upload_object(
        self, data: bytes, key: str, mime: str, image_type: ImageType = ImageType.PROCESSED
    ) -> PutObjectOutput:
        """Store ``data`` under ``key``.

        Raises:
            StorageError: If the backend rejects the write.
        """


class LocalStorage(Storage):
    def __init__(self, path: str) -> None:
        self.path = path

    def _resolve(self, key: str) -> str:
        root = os.path.abspath(self.path)
        dest_path = os.path.abspath(os.path.join(root, key.lstrip("/")))
        if os.path.commonpath([root, dest_path]) != root:
            raise ObjectNotFoundError(f"key escapes storage root: {key}")
        return dest_path

    async def download_object(self, key: str) -> bytes:
        file_path = self._resolve(key)
        try:
            async with aiofiles.open(file_path, "rb") as f:
                return await f.read()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise ObjectNotFoundError(f"failed to open file: {key}") from e
        except OSError as e:
            raise StorageError(f"failed to read file: {key}: {e}") from e

    async def upload_object(
        self, data: bytes, key: str, mime: str, image_type: ImageType = ImageType.PROCESSED
    ) -> PutObjectOutput:
        file_path = self._resolve(key)
        try:
            await aiofiles.os.makedirs(os.path.dirname(file_path), exist_ok=True)
            async with aiofiles.open(file_path, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise StorageError(f"failed to write file: {key}: {e}") from e
        LOGGER.debug("wrote %d bytes to %s", len(data), file_path)
        return PutObjectOutput(etag="", url="", size=len(data))


class S3Storage(Storage):
    def __init__(
        self,
        client: Any,
        bucket: str,
        base_url: str,
        original_base_url: Optional[str] = None,
    ) -> None:
        self.client = client
        self.bucket = bucket
        self.base_url = base_url
        self.original_base_url = original_base_url or base_url

    def url_for(self, key: str, image_type: ImageType = ImageType.PROCESSED) -> str:
        base = self.original_base_url if image_type == ImageType.ORIGINAL else self.base_url
        if not base.endswith("/"):
            base += "/"
        return urljoin(base, key)

    def _get(self, key: str) -> bytes:
        response = self.client.get_object(Bucket=self.bucket, Key=key)
        return response["Body"].read()

    async def download_object(self, key: str) -> bytes:
        trimmed = key.lstrip("/")
        LOGGER.debug("downloading object: %s from bucket: %s", trimmed, self.bucket)
        try:
            return await asyncio.to_thread(self._get, trimmed)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code")
            if error_code in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(f"{self.bucket}/{trimmed}") from e
            raise StorageError(f"failed to download {self.bucket}/{trimmed}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"failed to download {self.bucket}/{trimmed}: {e}") from e

    async def upload_object(
        self, data: bytes, key: str, mime: str, image_type: ImageType = ImageType.PROCESSED
    ) -> PutObjectOutput:
        trimmed = key.lstrip("/")
        try:
            response = await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=trimmed,
                Body=data,
                CacheControl=CACHE_CONTROL,
                ContentType=mime,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"failed to upload object {self.bucket}/{trimmed}: {e}") from e

        return PutObjectOutput(
            etag=(response.get("ETag") or "").strip('"'),
            url=self.url_for(trimmed, image_type),
            size=len(data),
        )


def s3_client_from_settings(settings: Settings) -> Any:
    s3 = settings.s3
    session = boto3.session.Session(
        aws_access_key_id=s3.access_key_id or None,
        aws_secret_access_key=s3.secret_access_key or None,
    )
    config = Config(
        region_name=s3.region,
        s3={"addressing_style": "path" if s3.force_path_style else "auto"},
    )
    return session.client("s3", endpoint_url=s3.endpoint or None, config=config)


def build_storage(settings: Settings) -> Storage:
    """Create the storage backend selected by ``settings.storage_backend``."""
    if settings.storage_backend == "s3":
        if not settings.s3.bucket:
            raise ValueError("S3 storage selected but S3_BUCKET is not set")
        return S3Storage(
            s3_client_from_settings(settings),
            settings.s3.bucket,
            settings.s3.base_url,
            settings.s3.original_base_url,
        )
    if settings.storage_backend == "local":
        return LocalStorage(settings.storage_path)
    raise ValueError(f"unknown storage backend: {settings.storage_backend}")
