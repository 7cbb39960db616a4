"""
Object storage — evidence files, test case attachments and uploads.

The application builds exactly one storage client in ``create_app`` and
keeps it in ``app.extensions["object_storage"]``; services receive it as an
argument. Only object paths (keys) are persisted in the database.

Backends:
    S3Storage     boto3 client against a bucket (AWS or S3-compatible endpoint)
    LocalStorage  directory on disk, same contract (dev / tests)

Contract:
    store(data, folder, filename, content_type) -> path
    delete(path)
    copy(temp_path, target_folder)              -> path  ("<target_folder>/<basename>")
    url(path)                                   -> download URL
    close()
"""

import logging
import re
import shutil
import time
import uuid
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app

from testhub.core.exceptions import StorageError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
})

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.\-]")


def sanitize_filename(filename: str) -> str:
    """Replace every character outside [a-zA-Z0-9.-] with an underscore."""
    return _UNSAFE_CHARS.sub("_", filename or "file")


def build_object_key(folder: str, filename: str) -> str:
    """``<folder>/<epoch-ms>-<random>-<sanitized name>``; unique under concurrent uploads."""
    timestamp = int(time.time() * 1000)
    suffix = uuid.uuid4().hex[:8]
    return f"{folder.strip('/')}/{timestamp}-{suffix}-{sanitize_filename(filename)}"


def basename(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1]


class ObjectStorage:
    """Storage contract shared by all backends."""

    def store(self, data: bytes, folder: str, filename: str, content_type: str | None = None) -> str:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError

    def copy(self, temp_path: str, target_folder: str) -> str:
        raise NotImplementedError

    def url(self, path: str) -> str:
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources."""


# ═══════════════════════════════════════════════════════════════
# S3
# ═══════════════════════════════════════════════════════════════
class S3Storage(ObjectStorage):
    def __init__(
        self,
        bucket_name: str,
        region: str,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        endpoint_url: str | None = None,
        url_expires: int = 3600,
    ):
        if not bucket_name:
            raise RuntimeError("S3_BUCKET_NAME must be set when STORAGE_BACKEND=s3")
        self.bucket_name = bucket_name
        self.url_expires = url_expires
        self.client = boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            endpoint_url=endpoint_url,
        )

    def store(self, data: bytes, folder: str, filename: str, content_type: str | None = None) -> str:
        key = build_object_key(folder, filename)
        try:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type or "application/octet-stream",
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("S3 upload failed key=%s: %s", key, exc)
            raise StorageError(f"Upload failed: {key}") from exc
        logger.info("Stored object %s (%d bytes)", key, len(data))
        return key

    def delete(self, path: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=path)
        except (ClientError, BotoCoreError) as exc:
            logger.error("S3 delete failed key=%s: %s", path, exc)
            raise StorageError(f"Delete failed: {path}") from exc
        logger.info("Deleted object %s", path)

    def copy(self, temp_path: str, target_folder: str) -> str:
        new_key = f"{target_folder.strip('/')}/{basename(temp_path)}"
        try:
            self.client.copy_object(
                Bucket=self.bucket_name,
                CopySource={"Bucket": self.bucket_name, "Key": temp_path},
                Key=new_key,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("S3 copy failed %s -> %s: %s", temp_path, new_key, exc)
            raise StorageError(f"Copy failed: {temp_path}") from exc
        return new_key

    def url(self, path: str) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": path},
                ExpiresIn=self.url_expires,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Could not sign URL for {path}") from exc

    def close(self) -> None:
        self.client.close()


# ═══════════════════════════════════════════════════════════════
# Local filesystem
# ═══════════════════════════════════════════════════════════════
class LocalStorage(ObjectStorage):
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root not in target.parents:
            raise StorageError(f"Path escapes storage root: {path}")
        return target

    def store(self, data: bytes, folder: str, filename: str, content_type: str | None = None) -> str:
        key = build_object_key(folder, filename)
        target = self._resolve(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Upload failed: {key}") from exc
        logger.info("Stored object %s (%d bytes)", key, len(data))
        return key

    def delete(self, path: str) -> None:
        try:
            self._resolve(path).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Delete failed: {path}") from exc
        logger.info("Deleted object %s", path)

    def copy(self, temp_path: str, target_folder: str) -> str:
        new_key = f"{target_folder.strip('/')}/{basename(temp_path)}"
        source = self._resolve(temp_path)
        target = self._resolve(new_key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError as exc:
            raise StorageError(f"Copy failed: {temp_path}") from exc
        return new_key

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def url(self, path: str) -> str:
        return self._resolve(path).as_uri()


# ═══════════════════════════════════════════════════════════════
# Factory
# ═══════════════════════════════════════════════════════════════
def build_storage(config) -> ObjectStorage:
    """Construct the backend named by ``STORAGE_BACKEND``."""
    backend = (config.get("STORAGE_BACKEND") or "local").lower()
    if backend == "s3":
        return S3Storage(
            bucket_name=config.get("S3_BUCKET_NAME"),
            region=config.get("AWS_REGION", "ap-northeast-1"),
            access_key_id=config.get("AWS_ACCESS_KEY_ID"),
            secret_access_key=config.get("AWS_SECRET_ACCESS_KEY"),
            endpoint_url=config.get("S3_ENDPOINT_URL"),
        )
    if backend == "local":
        return LocalStorage(config["LOCAL_STORAGE_ROOT"])
    raise RuntimeError(f"Unknown STORAGE_BACKEND {backend!r}")


def with_download_url(entry: dict, path: str, storage: ObjectStorage | None) -> dict:
    """Add ``download_url`` to a serialized row when a storage client is at hand."""
    if storage is not None:
        entry["download_url"] = storage.url(path)
    return entry


def get_storage() -> ObjectStorage:
    """Storage client built for the current application."""
    return current_app.extensions["object_storage"]
