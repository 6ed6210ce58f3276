from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..models import Project
from ..repository import DuplicateProjectError, JobSummary, TrackerRepository, get_repository
from ..schemas import ProjectCreate, ProjectResponse
from ..sessions import CurrentUser
from .auth import get_current_user

router = APIRouter()
logger = logging.getLogger("simtrack.api.projects")


def _to_response(project: Project, summaries: Dict[int, JobSummary]) -> ProjectResponse:
    job_count, latest_status = summaries.get(project.id, (0, None))
    return ProjectResponse(
        **project.model_dump(),
        job_count=job_count,
        latest_job_status=latest_status,
    )


@router.get("/projects", response_model=List[ProjectResponse])
def list_projects(
    archived: Optional[bool] = Query(default=None),
    repo: TrackerRepository = Depends(get_repository),
    user: CurrentUser = Depends(get_current_user),
):
    projects = repo.get_projects(archived)
    summaries = repo.job_summaries(p.id for p in projects)
    return [_to_response(p, summaries) for p in projects]


@router.post("/projects", response_model=ProjectResponse, status_code=201)
def create_project(
    body: ProjectCreate,
    repo: TrackerRepository = Depends(get_repository),
    user: CurrentUser = Depends(get_current_user),
):
    try:
        project = repo.create_project(body)
    except DuplicateProjectError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info(
        "Project created",
        extra={"event": "project.created", "project_id": project.id, "user_id": user.id},
    )
    return _to_response(project, {})


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: int,
    repo: TrackerRepository = Depends(get_repository),
    user: CurrentUser = Depends(get_current_user),
):
    project = repo.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return _to_response(project, repo.job_summaries([project.id]))


@router.put("/projects/{project_id}/archive", response_model=ProjectResponse)
def archive_project(
    project_id: int,
    repo: TrackerRepository = Depends(get_repository),
    user: CurrentUser = Depends(get_current_user),
):
    project = repo.archive_project(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")

    logger.info(
        "Project archived",
        extra={"event": "project.archived", "project_id": project.id, "user_id": user.id},
    )
    return _to_response(project, repo.job_summaries([project.id]))
