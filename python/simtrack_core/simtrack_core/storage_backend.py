"""Blob storage for job attachments.

Two backends:

* **local**: files under ``FILES_DIR`` (default, dev and single-node).
* **s3**: S3-compatible object storage (AWS S3, Cloudflare R2, MinIO).

Keys are ``/``-separated and relative, e.g. ``12/mesh_1705312800000.inp``.
Everything a job owns lives under the ``<job_id>/`` prefix so a job can be
cleaned up with one :meth:`StorageBackend.delete_prefix` call.

Configuration (environment variables)::

    STORAGE_BACKEND=local          # local | s3
    FILES_DIR=./data/files         # base dir for local backend

    S3_BUCKET=simtrack-files
    S3_REGION=us-east-1
    S3_ACCESS_KEY_ID=...
    S3_SECRET_ACCESS_KEY=...
    S3_ENDPOINT_URL=               # for R2/MinIO
"""
from __future__ import annotations

import abc
import os
import shutil
from pathlib import Path
from typing import Optional


class InvalidKeyError(ValueError):
    """Raised for keys that are empty or escape the storage root."""


def normalize_key(key: str) -> str:
    key = key.replace("\\", "/").strip("/")
    parts = [p for p in key.split("/") if p not in ("", ".")]
    if not parts or any(p == ".." for p in parts):
        raise InvalidKeyError(f"invalid storage key: {key!r}")
    return "/".join(parts)


class StorageBackend(abc.ABC):
    """Abstract interface for attachment storage."""

    @abc.abstractmethod
    def write_bytes(self, key: str, data: bytes) -> None:
        """Store ``data`` under ``key``, replacing any previous content."""

    @abc.abstractmethod
    def read_bytes(self, key: str) -> bytes:
        """Return the stored bytes; raises ``FileNotFoundError`` when absent."""

    @abc.abstractmethod
    def exists(self, key: str) -> bool:
        """Check if a key exists in the backend."""

    @abc.abstractmethod
    def size(self, key: str) -> int:
        """Size in bytes of the object at ``key``."""

    @abc.abstractmethod
    def delete(self, key: str) -> bool:
        """Remove one object. Returns False when nothing was there."""

    @abc.abstractmethod
    def delete_prefix(self, prefix: str) -> int:
        """Remove every object under ``prefix``. Returns the number removed."""

    @abc.abstractmethod
    def health_check(self) -> str:
        """Return 'ok' or an error description."""


# ═══════════════════════════════════════════════════════════════════
# Local filesystem backend
# ═══════════════════════════════════════════════════════════════════

class LocalBackend(StorageBackend):
    """Filesystem-based storage rooted at ``base_dir``."""

    def __init__(self, base_dir: str) -> None:
        self.base_dir = os.path.abspath(base_dir)
        os.makedirs(self.base_dir, exist_ok=True)

    def get_local_path(self, key: str) -> str:
        """Absolute path for ``key``; refuses anything outside ``base_dir``."""
        path = os.path.abspath(os.path.join(self.base_dir, normalize_key(key)))
        if os.path.commonpath([path, self.base_dir]) != self.base_dir:
            raise InvalidKeyError(f"invalid storage key: {key!r}")
        return path

    def write_bytes(self, key: str, data: bytes) -> None:
        path = Path(self.get_local_path(key))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def read_bytes(self, key: str) -> bytes:
        with open(self.get_local_path(key), "rb") as f:
            return f.read()

    def exists(self, key: str) -> bool:
        return os.path.isfile(self.get_local_path(key))

    def size(self, key: str) -> int:
        return os.path.getsize(self.get_local_path(key))

    def delete(self, key: str) -> bool:
        path = self.get_local_path(key)
        if not os.path.isfile(path):
            return False
        os.remove(path)
        return True

    def delete_prefix(self, prefix: str) -> int:
        path = self.get_local_path(prefix)
        if os.path.isfile(path):
            os.remove(path)
            return 1
        if not os.path.isdir(path):
            return 0
        removed = sum(len(files) for _root, _dirs, files in os.walk(path))
        shutil.rmtree(path)
        return removed

    def health_check(self) -> str:
        try:
            if os.path.isdir(self.base_dir) and os.access(self.base_dir, os.W_OK):
                return "ok"
            return f"directory not writable: {self.base_dir}"
        except OSError as e:
            return f"error: {e}"


# ═══════════════════════════════════════════════════════════════════
# S3-compatible backend (AWS S3 / Cloudflare R2 / MinIO)
# ═══════════════════════════════════════════════════════════════════

class S3Backend(StorageBackend):
    """S3-compatible object storage backend."""

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        access_key_id: str = "",
        secret_access_key: str = "",
        endpoint_url: Optional[str] = None,
    ) -> None:
        try:
            import boto3
        except ImportError:
            raise ImportError(
                "boto3 is required for S3 storage backend. "
                "Install it with: pip install 'simtrack[s3]'"
            )

        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url

        self.s3 = boto3.client(
            "s3",
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
            **kwargs,
        )
        self.bucket = bucket

    def write_bytes(self, key: str, data: bytes) -> None:
        self.s3.put_object(Bucket=self.bucket, Key=normalize_key(key), Body=data)

    def read_bytes(self, key: str) -> bytes:
        try:
            obj = self.s3.get_object(Bucket=self.bucket, Key=normalize_key(key))
        except self.s3.exceptions.NoSuchKey:
            raise FileNotFoundError(key)
        return obj["Body"].read()

    def exists(self, key: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self.s3.head_object(Bucket=self.bucket, Key=normalize_key(key))
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def size(self, key: str) -> int:
        head = self.s3.head_object(Bucket=self.bucket, Key=normalize_key(key))
        return int(head["ContentLength"])

    def delete(self, key: str) -> bool:
        if not self.exists(key):
            return False
        self.s3.delete_object(Bucket=self.bucket, Key=normalize_key(key))
        return True

    def delete_prefix(self, prefix: str) -> int:
        prefix = normalize_key(prefix) + "/"
        removed = 0
        paginator = self.s3.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            objects = [{"Key": o["Key"]} for o in page.get("Contents", [])]
            if objects:
                self.s3.delete_objects(Bucket=self.bucket, Delete={"Objects": objects})
                removed += len(objects)
        return removed

    def health_check(self) -> str:
        try:
            self.s3.head_bucket(Bucket=self.bucket)
            return "ok"
        except Exception as e:
            return f"error: {e}"


# ═══════════════════════════════════════════════════════════════════
# Factory (cached singleton)
# ═══════════════════════════════════════════════════════════════════

_backend: Optional[StorageBackend] = None


def get_storage_backend() -> StorageBackend:
    """Return the configured storage backend (cached singleton)."""
    global _backend
    if _backend is not None:
        return _backend

    backend_type = os.getenv("STORAGE_BACKEND", "local")

    if backend_type == "s3":
        _backend = S3Backend(
            bucket=os.environ["S3_BUCKET"],
            region=os.getenv("S3_REGION", "us-east-1"),
            access_key_id=os.environ.get("S3_ACCESS_KEY_ID", ""),
            secret_access_key=os.environ.get("S3_SECRET_ACCESS_KEY", ""),
            endpoint_url=os.getenv("S3_ENDPOINT_URL") or None,
        )
    else:
        _backend = LocalBackend(os.getenv("FILES_DIR", "./data/files"))

    return _backend
