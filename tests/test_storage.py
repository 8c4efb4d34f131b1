import asyncio
import io
import os

import aiofiles.os
import pytest
from botocore.exceptions import ClientError

from imaging.config import S3Settings, Settings
from imaging.errors import ObjectNotFoundError, StorageError
from imaging.models import ImageType
from imaging.storage import CACHE_CONTROL, LocalStorage, S3Storage, build_storage


class FakeS3Client:
    """Records calls the way boto3's S3 client receives them."""

    def __init__(self, objects=None, fail_put=False):
        self.objects = dict(objects or {})
        self.fail_put = fail_put
        self.put_calls = []

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[Key])}

    def put_object(self, **kwargs):
        if self.fail_put:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
        self.put_calls.append(kwargs)
        return {"ETag": '"d41d8cd98f00b204e9800998ecf8427e"'}


def test_local_upload_creates_directories(tmp_path):
    storage = LocalStorage(str(tmp_path))
    result = asyncio.run(storage.upload_object(b"abc", "a/b/c.jpg", "image/jpeg"))
    assert (tmp_path / "a" / "b" / "c.jpg").read_bytes() == b"abc"
    assert (result.etag, result.url, result.size) == ("", "", 3)


def test_local_upload_creates_directories_through_aiofiles(tmp_path, monkeypatch):
    created = []
    original = aiofiles.os.makedirs

    async def recording_makedirs(path, **kwargs):
        created.append(path)
        await original(path, **kwargs)

    monkeypatch.setattr(aiofiles.os, "makedirs", recording_makedirs)
    storage = LocalStorage(str(tmp_path))
    asyncio.run(storage.upload_object(b"abc", "x/y/z.png", "image/png"))
    assert created == [os.path.join(str(tmp_path), "x", "y")]
    assert (tmp_path / "x" / "y" / "z.png").read_bytes() == b"abc"


def test_local_download_round_trip(tmp_path):
    (tmp_path / "photo.png").write_bytes(b"png-bytes")
    storage = LocalStorage(str(tmp_path))
    assert asyncio.run(storage.download_object("photo.png")) == b"png-bytes"


def test_local_download_missing(tmp_path):
    storage = LocalStorage(str(tmp_path))
    with pytest.raises(ObjectNotFoundError):
        asyncio.run(storage.download_object("missing.png"))


def test_local_rejects_keys_outside_root(tmp_path):
    storage = LocalStorage(str(tmp_path / "root"))
    with pytest.raises(ObjectNotFoundError):
        asyncio.run(storage.download_object("../secret"))


def test_s3_upload_sets_headers_and_url():
    client = FakeS3Client()
    storage = S3Storage(client, "images", "https://cdn.example.com/media")
    result = asyncio.run(storage.upload_object(b"data", "/out/cfg1.jpg", "image/jpeg"))

    (call,) = client.put_calls
    assert call["Bucket"] == "images"
    assert call["Key"] == "out/cfg1.jpg"
    assert call["CacheControl"] == CACHE_CONTROL
    assert call["ContentType"] == "image/jpeg"
    assert result.etag == "d41d8cd98f00b204e9800998ecf8427e"
    assert result.url == "https://cdn.example.com/media/out/cfg1.jpg"
    assert result.size == 4


def test_s3_original_uses_original_base_url():
    storage = S3Storage(FakeS3Client(), "images", "https://cdn.example.com/", "https://originals.example.com/")
    result = asyncio.run(storage.upload_object(b"data", "orig.png", "image/png", ImageType.ORIGINAL))
    assert result.url == "https://originals.example.com/orig.png"


def test_s3_download():
    storage = S3Storage(FakeS3Client({"env/bg.png": b"bg"}), "images", "https://cdn.example.com/")
    assert asyncio.run(storage.download_object("/env/bg.png")) == b"bg"


def test_s3_download_missing():
    storage = S3Storage(FakeS3Client(), "images", "https://cdn.example.com/")
    with pytest.raises(ObjectNotFoundError):
        asyncio.run(storage.download_object("nope.png"))


def test_s3_upload_failure():
    storage = S3Storage(FakeS3Client(fail_put=True), "images", "https://cdn.example.com/")
    with pytest.raises(StorageError):
        asyncio.run(storage.upload_object(b"data", "x.jpg", "image/jpeg"))


def test_build_storage_local(tmp_path):
    storage = build_storage(Settings(storage_path=str(tmp_path)))
    assert isinstance(storage, LocalStorage)


def test_build_storage_s3(monkeypatch):
    monkeypatch.setenv("AWS_EC2_METADATA_DISABLED", "true")
    settings = Settings(
        storage_backend="s3",
        s3=S3Settings(
            endpoint="http://localhost:9000",
            bucket="images",
            access_key_id="key",
            secret_access_key="secret",
            force_path_style=True,
            base_url="https://cdn.example.com/",
        ),
    )
    storage = build_storage(settings)
    assert isinstance(storage, S3Storage)
    assert storage.bucket == "images"
    assert storage.original_base_url == "https://cdn.example.com/"


def test_build_storage_s3_requires_bucket():
    with pytest.raises(ValueError):
        build_storage(Settings(storage_backend="s3"))


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("COMPUTE_WORKERS", "3")
    monkeypatch.setenv("STORAGE_BACKEND", "S3")
    monkeypatch.setenv("S3_BUCKET", "bucket")
    monkeypatch.setenv("S3_FORCE_PATH_STYLE", "true")
    monkeypatch.setenv("ENABLE_OPENAPI", "1")
    settings = Settings.from_env()
    assert settings.compute_workers == 3
    assert settings.storage_backend == "s3"
    assert settings.s3.bucket == "bucket"
    assert settings.s3.force_path_style is True
    assert settings.enable_openapi is True
    assert settings.max_body_size == 10 * 1000 * 1000
