from __future__ import annotations

import logging
import os
from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse, Response

from simtrack_core.schemas import FILE_LABELS
from simtrack_core.storage_backend import InvalidKeyError, LocalBackend, StorageBackend

from ..metrics import registry
from ..repository import TrackerRepository, get_repository
from ..schemas import FileCreate, JobFileResponse, MessageResponse
from ..sessions import CurrentUser
from ..settings import settings
from ..storage import content_type_for, get_file_store, remove_file, save_upload
from .auth import get_current_user

router = APIRouter()
logger = logging.getLogger("simtrack.api.files")

_HTML_EXTENSIONS = (".html", ".htm")


def _is_html(upload: UploadFile) -> bool:
    ext = os.path.splitext(upload.filename or "")[1].lower()
    return ext in _HTML_EXTENSIONS or (upload.content_type or "").startswith("text/html")


@router.get("/jobs/{job_id}/files", response_model=List[JobFileResponse])
def list_job_files(
    job_id: int,
    repo: TrackerRepository = Depends(get_repository),
    user: CurrentUser = Depends(get_current_user),
):
    if repo.get_job(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return repo.get_job_files(job_id)


@router.post("/jobs/{job_id}/files", response_model=JobFileResponse, status_code=201)
def upload_job_file(
    job_id: int,
    file: UploadFile = File(...),
    label: str = Form(...),
    repo: TrackerRepository = Depends(get_repository),
    store: StorageBackend = Depends(get_file_store),
    user: CurrentUser = Depends(get_current_user),
):
    """Store an attachment for a job.

    A ``report`` upload must be HTML; besides its file row it becomes the
    job's ``report_path``.
    """
    if repo.get_job(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")
    if label not in FILE_LABELS:
        raise HTTPException(status_code=400, detail=f"Invalid label. Must be one of: {', '.join(FILE_LABELS)}")
    if label == "report" and not _is_html(file):
        raise HTTPException(status_code=400, detail="Report must be an HTML file")

    data = file.file.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(status_code=400, detail="File too large")

    filename = os.path.basename(file.filename or "") or "upload"
    key = save_upload(store, job_id, label, filename, data)
    record = repo.create_file(FileCreate(
        job_id=job_id,
        label=label,
        filename=filename,
        path=key,
        mimetype=file.content_type or content_type_for(filename),
        size=len(data),
    ))
    if label == "report":
        repo.update_job(job_id, {"report_path": key})

    registry.inc("simtrack_files_uploaded_total", {"label": label})
    registry.inc("simtrack_file_upload_bytes_total", value=len(data))
    logger.info(
        "File uploaded",
        extra={
            "event": "file.uploaded",
            "job_id": job_id,
            "file_id": record.id,
            "label": label,
            "size": record.size,
            "user_id": user.id,
        },
    )
    return record


@router.get("/files/{file_path:path}")
def download_file(
    file_path: str,
    store: StorageBackend = Depends(get_file_store),
    user: CurrentUser = Depends(get_current_user),
):
    """Serve stored bytes with a content type inferred from the extension."""
    media_type = content_type_for(file_path)
    try:
        if not store.exists(file_path):
            raise HTTPException(status_code=404, detail="File not found")
        if isinstance(store, LocalBackend):
            return FileResponse(store.get_local_path(file_path), media_type=media_type)
        return Response(content=store.read_bytes(file_path), media_type=media_type)
    except InvalidKeyError:
        raise HTTPException(status_code=404, detail="File not found")


@router.delete("/files/{file_id}", response_model=MessageResponse)
def delete_file(
    file_id: int,
    repo: TrackerRepository = Depends(get_repository),
    store: StorageBackend = Depends(get_file_store),
    user: CurrentUser = Depends(get_current_user),
):
    record = repo.get_file(file_id)
    if record is None:
        raise HTTPException(status_code=404, detail="File not found")
    key, job_id = record.path, record.job_id
    if not repo.delete_file(file_id):
        raise HTTPException(status_code=404, detail="File not found")

    remove_file(store, key, file_id)

    job = repo.get_job(job_id)
    if job is not None and job.report_path == key:
        repo.update_job(job_id, {"report_path": None})

    logger.info(
        "File deleted",
        extra={"event": "file.deleted", "file_id": file_id, "job_id": job_id, "user_id": user.id},
    )
    return MessageResponse(message="File deleted successfully")
