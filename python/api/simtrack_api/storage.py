"""Storage helpers for job attachments.

Routers go through these helpers so they never build storage keys by hand.
Every file of a job is stored under ``<job_id>/`` as
``<label>_<epoch_ms><ext>``; the original filename is kept in the metadata
row only.
"""
from __future__ import annotations

import logging
import os
import re
import time
from typing import Optional

from simtrack_core.storage_backend import StorageBackend, get_storage_backend

logger = logging.getLogger("simtrack.api.storage")

_SAFE_EXT = re.compile(r"^\.[A-Za-z0-9]{1,16}$")

CONTENT_TYPES = {
    ".html": "text/html",
    ".htm": "text/html",
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".log": "text/plain",
    ".csv": "text/csv",
}


def get_file_store() -> StorageBackend:
    return get_storage_backend()


def job_prefix(job_id: int) -> str:
    return str(job_id)


def build_file_key(job_id: int, label: str, filename: str, now_ms: Optional[int] = None) -> str:
    ext = os.path.splitext(filename or "")[1]
    if not _SAFE_EXT.match(ext):
        ext = ""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{job_prefix(job_id)}/{label}_{stamp}{ext}"


def save_upload(store: StorageBackend, job_id: int, label: str, filename: str, data: bytes) -> str:
    """Persist uploaded bytes and return the storage key."""
    key = build_file_key(job_id, label, filename)
    store.write_bytes(key, data)
    return key


def content_type_for(key: str) -> str:
    return CONTENT_TYPES.get(os.path.splitext(key)[1].lower(), "application/octet-stream")


def remove_job_files(store: StorageBackend, job_id: int) -> bool:
    """Delete everything stored for a job. Failures are logged, not raised."""
    try:
        removed = store.delete_prefix(job_prefix(job_id))
    except Exception:
        logger.warning(
            "Failed to remove stored files for deleted job",
            exc_info=True,
            extra={"event": "storage.job_cleanup_failed", "job_id": job_id},
        )
        return False
    logger.info(
        "Removed stored files for deleted job",
        extra={"event": "storage.job_cleanup", "job_id": job_id, "size": removed},
    )
    return True


def remove_file(store: StorageBackend, key: str, file_id: Optional[int] = None) -> bool:
    """Delete one stored file. Failures are logged, not raised."""
    try:
        return store.delete(key)
    except Exception:
        logger.warning(
            "Failed to remove stored file",
            exc_info=True,
            extra={"event": "storage.file_cleanup_failed", "file_id": file_id, "path": key},
        )
        return False
