"""Runtime settings collected from environment variables.

Environment variables:
    COMPUTE_WORKERS: Width of the compute pool (default: CPU count).
    STORAGE_BACKEND: 'local' (default) or 's3'.
    STORAGE_PATH: Base directory for local storage (default './storage').
    S3_ENDPOINT, S3_BUCKET, S3_ACCESS_KEY_ID, S3_SECRET_ACCESS_KEY,
    S3_REGION, S3_FORCE_PATH_STYLE: S3 client settings.
    S3_BASE_URL: Public base URL for processed objects.
    S3_ORIGINAL_BASE_URL: Public base URL for saved originals.
    MAX_BODY_SIZE_MB: Upload limit in megabytes (default 10).
    REQUEST_TIMEOUT_SECONDS: Outer request timeout (default 60).
    ENABLE_OPENAPI: Expose the OpenAPI docs when 'true'.
    LOG_LEVEL: Root logging level (default 'INFO').
    MAX_IMAGE_PIXELS: Pillow decompression-bomb limit.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class S3Settings:
    endpoint: str = ""
    bucket: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    region: str = "us-east-1"
    force_path_style: bool = False
    base_url: str = ""
    original_base_url: Optional[str] = None


@dataclass(frozen=True)
class Settings:
    compute_workers: int = os.cpu_count() or 1
    storage_backend: str = "local"
    storage_path: str = "./storage"
    s3: S3Settings = field(default_factory=S3Settings)
    max_body_size_mb: int = 10
    request_timeout_seconds: float = 60.0
    enable_openapi: bool = False
    log_level: str = "INFO"
    max_image_pixels: int = 178956970

    @property
    def max_body_size(self) -> int:
        return self.max_body_size_mb * 1000 * 1000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current process environment."""
        s3 = S3Settings(
            endpoint=os.getenv("S3_ENDPOINT", ""),
            bucket=os.getenv("S3_BUCKET", ""),
            access_key_id=os.getenv("S3_ACCESS_KEY_ID", ""),
            secret_access_key=os.getenv("S3_SECRET_ACCESS_KEY", ""),
            region=os.getenv("S3_REGION", "us-east-1"),
            force_path_style=_env_bool("S3_FORCE_PATH_STYLE"),
            base_url=os.getenv("S3_BASE_URL", ""),
            original_base_url=os.getenv("S3_ORIGINAL_BASE_URL") or None,
        )
        return cls(
            compute_workers=max(1, int(os.getenv("COMPUTE_WORKERS", str(os.cpu_count() or 1)))),
            storage_backend=os.getenv("STORAGE_BACKEND", "local").lower(),
            storage_path=os.getenv("STORAGE_PATH", "./storage"),
            s3=s3,
            max_body_size_mb=int(os.getenv("MAX_BODY_SIZE_MB", "10")),
            request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "60")),
            enable_openapi=_env_bool("ENABLE_OPENAPI"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            max_image_pixels=int(os.getenv("MAX_IMAGE_PIXELS", "178956970")),
        )
