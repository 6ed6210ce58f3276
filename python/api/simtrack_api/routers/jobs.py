from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from simtrack_core.schemas import JobQuery, ProjectTimeline, StatusCounts
from simtrack_core.storage_backend import StorageBackend
from simtrack_core.timeline import build_timeline

from ..metrics import registry
from ..models import Job
from ..repository import TrackerRepository, get_repository
from ..schemas import (
    AnalysisUpdate,
    IterationCreate,
    JobCreate,
    JobResponse,
    JobUpdate,
    JobWithProject,
    MessageResponse,
)
from ..sessions import CurrentUser
from ..storage import get_file_store, remove_job_files
from .auth import get_current_user

router = APIRouter()
logger = logging.getLogger("simtrack.api.jobs")


def job_query(
    status: Optional[str] = Query(default=None),
    bench: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    sort_order: Optional[str] = Query(default=None, alias="sortOrder"),
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    include_archived: Optional[str] = Query(default=None, alias="includeArchived"),
) -> JobQuery:
    """Decode the listing query string into a validated :class:`JobQuery`."""
    try:
        return JobQuery(
            status=status,
            bench=bench,
            search=search,
            sort_by=sort_by,
            sort_order=sort_order,
            project_id=project_id,
            include_archived=include_archived,
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False, include_context=False))


def _require_job(repo: TrackerRepository, job_id: int) -> Job:
    job = repo.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


def _require_project(repo: TrackerRepository, project_id: int) -> None:
    if repo.get_project(project_id) is None:
        raise HTTPException(status_code=400, detail=f"Unknown project {project_id}")


# ── Listings ─────────────────────────────────────────

@router.get("/jobs", response_model=List[JobWithProject])
def list_jobs(
    query: JobQuery = Depends(job_query),
    repo: TrackerRepository = Depends(get_repository),
    user: CurrentUser = Depends(get_current_user),
):
    """Jobs joined with their project name, filtered and sorted."""
    return repo.get_jobs(query)


@router.get("/jobs/stats", response_model=StatusCounts)
def job_stats(
    query: JobQuery = Depends(job_query),
    repo: TrackerRepository = Depends(get_repository),
    user: CurrentUser = Depends(get_current_user),
):
    """Per-status job counts for the dashboard cards."""
    return repo.count_jobs_by_status(query)


@router.get("/jobs/timeline", response_model=List[ProjectTimeline])
def job_timeline(
    query: JobQuery = Depends(job_query),
    repo: TrackerRepository = Depends(get_repository),
    user: CurrentUser = Depends(get_current_user),
):
    """Jobs grouped per project with each project's request/due span."""
    return build_timeline(repo.get_jobs(query))


# ── Single job ───────────────────────────────────────

@router.post("/jobs", response_model=JobResponse, status_code=201)
def create_job(
    body: JobCreate,
    repo: TrackerRepository = Depends(get_repository),
    user: CurrentUser = Depends(get_current_user),
):
    _require_project(repo, body.project_id)
    if body.parent_job_id is not None:
        _require_job(repo, body.parent_job_id)

    job = repo.create_job(body)
    registry.inc("simtrack_jobs_created_total", {"bench": job.bench, "type": job.type})
    logger.info(
        "Job created",
        extra={
            "event": "job.created",
            "job_id": job.id,
            "project_id": job.project_id,
            "user_id": user.id,
            "status": job.status,
        },
    )
    return job


@router.get("/jobs/{job_id}", response_model=JobResponse)
def get_job(
    job_id: int,
    repo: TrackerRepository = Depends(get_repository),
    user: CurrentUser = Depends(get_current_user),
):
    return _require_job(repo, job_id)


@router.put("/jobs/{job_id}", response_model=JobResponse)
def update_job(
    job_id: int,
    body: JobUpdate,
    repo: TrackerRepository = Depends(get_repository),
    user: CurrentUser = Depends(get_current_user),
):
    changes = body.changes()
    if "project_id" in changes:
        _require_project(repo, changes["project_id"])

    job = repo.update_job(job_id, changes)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")

    logger.info(
        "Job updated",
        extra={"event": "job.updated", "job_id": job.id, "user_id": user.id, "status": job.status},
    )
    return job


@router.delete("/jobs/{job_id}", response_model=MessageResponse)
def delete_job(
    job_id: int,
    repo: TrackerRepository = Depends(get_repository),
    store: StorageBackend = Depends(get_file_store),
    user: CurrentUser = Depends(get_current_user),
):
    if not repo.delete_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found")

    # The row is gone either way; a failed cleanup leaves orphaned bytes behind.
    remove_job_files(store, job_id)

    registry.inc("simtrack_jobs_deleted_total")
    logger.info("Job deleted", extra={"event": "job.deleted", "job_id": job_id, "user_id": user.id})
    return MessageResponse(message="Job deleted successfully")


@router.post("/jobs/{job_id}/iterations", response_model=JobResponse, status_code=201)
def create_iteration(
    job_id: int,
    body: Optional[IterationCreate] = None,
    repo: TrackerRepository = Depends(get_repository),
    user: CurrentUser = Depends(get_current_user),
):
    """Queue a follow-up job that starts from an existing job's setup."""
    base = _require_job(repo, job_id)
    body = body or IterationCreate()

    job = repo.create_job(JobCreate(
        project_id=base.project_id,
        simulation_name=body.simulation_name or f"{base.simulation_name} - Iteration",
        bench=base.bench,
        type=base.type,
        date_request=body.date_request or date.today(),
        date_due=body.date_due,
        priority=body.priority if body.priority is not None else base.priority,
        status="queued",
        components=body.components if body.components is not None else list(base.components or []),
        parent_job_id=base.id,
        notes=body.notes if body.notes is not None else f"Iteration based on job #{base.id}",
    ))

    registry.inc("simtrack_jobs_created_total", {"bench": job.bench, "type": job.type})
    logger.info(
        "Job iteration created",
        extra={"event": "job.iteration_created", "job_id": job.id, "project_id": job.project_id, "user_id": user.id},
    )
    return job


@router.put("/jobs/{job_id}/analysis", response_model=JobResponse)
def update_analysis(
    job_id: int,
    body: AnalysisUpdate,
    repo: TrackerRepository = Depends(get_repository),
    user: CurrentUser = Depends(get_current_user),
):
    """Record the engineer's confidence and conclusion for a job."""
    job = repo.update_job(job_id, body.changes())
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")

    logger.info("Job analysis updated", extra={"event": "job.analysis_updated", "job_id": job.id, "user_id": user.id})
    return job
