"""In-memory :class:`TrackerRepository` used as a test double.

Rows are kept in insertion-ordered dicts and handed out as copies, so callers
can no more mutate stored state through a returned object than they could
with a committed SQL row.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from simtrack_core.query import apply_query
from simtrack_core.schemas import UNKNOWN_PROJECT, JobQuery, StatusCounts

from .models import File, Job, Project, User, utcnow
from .repository import (
    DuplicateProjectError,
    JobSummary,
    TrackerRepository,
    count_statuses,
    with_project,
)
from .schemas import FileCreate, JobCreate, JobWithProject, ProjectCreate


def _copy(row):
    return type(row)(**row.model_dump())


class InMemoryTrackerRepository(TrackerRepository):
    def __init__(self) -> None:
        self.users: Dict[int, User] = {}
        self.projects: Dict[int, Project] = {}
        self.jobs: Dict[int, Job] = {}
        self.files: Dict[int, File] = {}
        self._ids = {"users": 0, "projects": 0, "jobs": 0, "files": 0}

    def _next_id(self, table: str) -> int:
        self._ids[table] += 1
        return self._ids[table]

    # ── Users ───────────────────────────────────────
    def get_user(self, user_id: int) -> Optional[User]:
        user = self.users.get(user_id)
        return _copy(user) if user else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        for user in self.users.values():
            if user.username == username:
                return _copy(user)
        return None

    def create_user(self, username: str, password_hash: str) -> User:
        if any(u.username == username for u in self.users.values()):
            raise ValueError(f"User '{username}' already exists")
        user = User(id=self._next_id("users"), username=username, password_hash=password_hash)
        self.users[user.id] = user
        return _copy(user)

    def count_users(self) -> int:
        return len(self.users)

    # ── Projects ────────────────────────────────────
    def get_projects(self, archived: Optional[bool] = None) -> List[Project]:
        rows = [p for p in self.projects.values() if archived is None or p.archived == archived]
        rows.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return [_copy(p) for p in rows]

    def get_project(self, project_id: int) -> Optional[Project]:
        project = self.projects.get(project_id)
        return _copy(project) if project else None

    def create_project(self, data: ProjectCreate) -> Project:
        if any(p.name == data.name for p in self.projects.values()):
            raise DuplicateProjectError(data.name)
        project = Project(
            id=self._next_id("projects"),
            name=data.name,
            archived=data.archived,
            created_at=utcnow(),
        )
        self.projects[project.id] = project
        return _copy(project)

    def archive_project(self, project_id: int) -> Optional[Project]:
        project = self.projects.get(project_id)
        if project is None:
            return None
        project.archived = True
        return _copy(project)

    def job_summaries(self, project_ids: Iterable[int]) -> Dict[int, JobSummary]:
        wanted = set(project_ids)
        newest_first = sorted(self.jobs.values(), key=lambda j: (j.created_at, j.id), reverse=True)
        summaries: Dict[int, JobSummary] = {}
        for job in newest_first:
            if job.project_id in wanted:
                count, latest = summaries.get(job.project_id, (0, job.status))
                summaries[job.project_id] = (count + 1, latest)
        return summaries

    # ── Jobs ────────────────────────────────────────
    def _joined(self, include_archived: bool) -> List[JobWithProject]:
        rows = []
        for job in self.jobs.values():
            project = self.projects.get(job.project_id)
            if project is not None and project.archived and not include_archived:
                continue
            rows.append(with_project(job, project.name if project else UNKNOWN_PROJECT))
        return rows

    def get_jobs(self, query: Optional[JobQuery] = None) -> List[JobWithProject]:
        query = query or JobQuery()
        return apply_query(self._joined(query.include_archived), query)

    def count_jobs_by_status(self, query: Optional[JobQuery] = None) -> StatusCounts:
        return count_statuses(row.status for row in self.get_jobs(query))

    def get_job(self, job_id: int) -> Optional[Job]:
        job = self.jobs.get(job_id)
        return _copy(job) if job else None

    def create_job(self, data: JobCreate) -> Job:
        now = utcnow()
        job = Job(**data.model_dump(), id=self._next_id("jobs"), created_at=now, updated_at=now)
        self.jobs[job.id] = job
        return _copy(job)

    def update_job(self, job_id: int, changes: dict) -> Optional[Job]:
        job = self.jobs.get(job_id)
        if job is None:
            return None
        for field, value in changes.items():
            setattr(job, field, list(value) if field == "components" else value)
        job.updated_at = utcnow()
        return _copy(job)

    def delete_job(self, job_id: int) -> bool:
        if self.jobs.pop(job_id, None) is None:
            return False
        for file_id in [f.id for f in self.files.values() if f.job_id == job_id]:
            del self.files[file_id]
        return True

    # ── Files ───────────────────────────────────────
    def get_job_files(self, job_id: int) -> List[File]:
        return [_copy(f) for f in self.files.values() if f.job_id == job_id]

    def create_file(self, data: FileCreate) -> File:
        record = File(**data.model_dump(), id=self._next_id("files"), uploaded_at=utcnow())
        self.files[record.id] = record
        return _copy(record)

    def get_file(self, file_id: int) -> Optional[File]:
        record = self.files.get(file_id)
        return _copy(record) if record else None

    def delete_file(self, file_id: int) -> bool:
        return self.files.pop(file_id, None) is not None
