"""Persistence layer for users, projects, jobs and job files.

Routers depend on :class:`TrackerRepository` only. :class:`SqlTrackerRepository`
is the real implementation; ``memory_repository`` holds an in-memory double
with identical semantics for tests.

Conventions shared by every implementation:

* lookups by id return ``None`` (or ``False`` for deletes) when the row is
  missing; they never raise for not-found;
* ``get_jobs`` never returns ``None``, only a possibly empty list;
* timestamps are UTC, stamped with ``models.utcnow``.
"""
from __future__ import annotations

import abc
from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple

from fastapi import Depends
from sqlalchemy import case, false, func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from simtrack_core.schemas import JOB_STATUSES, UNKNOWN_PROJECT, JobQuery, StatusCounts

from .db import get_session
from .models import File, Job, Project, User, utcnow
from .schemas import FileCreate, JobCreate, JobWithProject, ProjectCreate

# project_id -> (job count, status of the most recently created job)
JobSummary = Tuple[int, Optional[str]]


class DuplicateProjectError(ValueError):
    """A project with the same name already exists."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Project '{name}' already exists")
        self.name = name


def with_project(job: Job, project_name: str) -> JobWithProject:
    return JobWithProject(**job.model_dump(), project_name=project_name)


def count_statuses(statuses: Iterable[str]) -> StatusCounts:
    counts = Counter(statuses)
    return StatusCounts(
        **{s: counts.get(s, 0) for s in JOB_STATUSES},
        total=sum(counts.values()),
    )


class TrackerRepository(abc.ABC):
    """Storage operations used by the HTTP layer."""

    # ── Users ───────────────────────────────────────
    @abc.abstractmethod
    def get_user(self, user_id: int) -> Optional[User]: ...

    @abc.abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abc.abstractmethod
    def create_user(self, username: str, password_hash: str) -> User: ...

    @abc.abstractmethod
    def count_users(self) -> int: ...

    # ── Projects ────────────────────────────────────
    @abc.abstractmethod
    def get_projects(self, archived: Optional[bool] = None) -> List[Project]:
        """All projects (or only archived / active ones), newest first."""

    @abc.abstractmethod
    def get_project(self, project_id: int) -> Optional[Project]: ...

    @abc.abstractmethod
    def create_project(self, data: ProjectCreate) -> Project:
        """Raises :class:`DuplicateProjectError` when the name is taken."""

    @abc.abstractmethod
    def archive_project(self, project_id: int) -> Optional[Project]:
        """One-way archived=False -> True. Archiving twice is a no-op."""

    @abc.abstractmethod
    def job_summaries(self, project_ids: Iterable[int]) -> Dict[int, JobSummary]: ...

    # ── Jobs ────────────────────────────────────────
    @abc.abstractmethod
    def get_jobs(self, query: Optional[JobQuery] = None) -> List[JobWithProject]:
        """Filtered, sorted job listing joined with the project name."""

    @abc.abstractmethod
    def count_jobs_by_status(self, query: Optional[JobQuery] = None) -> StatusCounts: ...

    @abc.abstractmethod
    def get_job(self, job_id: int) -> Optional[Job]: ...

    @abc.abstractmethod
    def create_job(self, data: JobCreate) -> Job: ...

    @abc.abstractmethod
    def update_job(self, job_id: int, changes: dict) -> Optional[Job]:
        """Overwrite the given fields and refresh ``updated_at``."""

    @abc.abstractmethod
    def delete_job(self, job_id: int) -> bool:
        """Delete the job and its file rows. Stored bytes are the caller's job."""

    # ── Files ───────────────────────────────────────
    @abc.abstractmethod
    def get_job_files(self, job_id: int) -> List[File]: ...

    @abc.abstractmethod
    def create_file(self, data: FileCreate) -> File: ...

    @abc.abstractmethod
    def get_file(self, file_id: int) -> Optional[File]: ...

    @abc.abstractmethod
    def delete_file(self, file_id: int) -> bool: ...


# ═══════════════════════════════════════════════════════════════════
# SQL implementation
# ═══════════════════════════════════════════════════════════════════

def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlTrackerRepository(TrackerRepository):
    def __init__(self, session: Session) -> None:
        self.session = session

    # ── Users ───────────────────────────────────────
    def get_user(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.session.exec(select(User).where(User.username == username)).first()

    def create_user(self, username: str, password_hash: str) -> User:
        user = User(username=username, password_hash=password_hash)
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def count_users(self) -> int:
        return self.session.exec(select(func.count()).select_from(User)).one()

    # ── Projects ────────────────────────────────────
    def get_projects(self, archived: Optional[bool] = None) -> List[Project]:
        stmt = select(Project)
        if archived is not None:
            stmt = stmt.where(Project.archived == archived)
        stmt = stmt.order_by(col(Project.created_at).desc(), col(Project.id).desc())
        return list(self.session.exec(stmt).all())

    def get_project(self, project_id: int) -> Optional[Project]:
        return self.session.get(Project, project_id)

    def create_project(self, data: ProjectCreate) -> Project:
        existing = self.session.exec(select(Project).where(Project.name == data.name)).first()
        if existing is not None:
            raise DuplicateProjectError(data.name)

        project = Project(name=data.name, archived=data.archived)
        self.session.add(project)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise DuplicateProjectError(data.name)
        self.session.refresh(project)
        return project

    def archive_project(self, project_id: int) -> Optional[Project]:
        project = self.session.get(Project, project_id)
        if project is None:
            return None
        if not project.archived:
            project.archived = True
            self.session.add(project)
            self.session.commit()
            self.session.refresh(project)
        return project

    def job_summaries(self, project_ids: Iterable[int]) -> Dict[int, JobSummary]:
        ids = list(project_ids)
        if not ids:
            return {}
        stmt = (
            select(Job.project_id, Job.status)
            .where(col(Job.project_id).in_(ids))
            .order_by(col(Job.created_at).desc(), col(Job.id).desc())
        )
        summaries: Dict[int, JobSummary] = {}
        for project_id, status in self.session.exec(stmt).all():
            count, latest = summaries.get(project_id, (0, status))
            summaries[project_id] = (count + 1, latest)
        return summaries

    # ── Jobs ────────────────────────────────────────
    def _listing(self, query: JobQuery, columns):
        """SELECT over jobs left-joined to projects with the query's predicates."""
        project_name = func.coalesce(Project.name, UNKNOWN_PROJECT)
        stmt = select(*columns(project_name)).join(Project, Job.project_id == Project.id, isouter=True)

        if not query.include_archived:
            stmt = stmt.where(or_(col(Project.archived).is_(None), Project.archived == false()))
        if query.project_id is not None:
            stmt = stmt.where(Job.project_id == query.project_id)
        if query.status is not None:
            stmt = stmt.where(Job.status == query.status)
        if query.bench is not None:
            stmt = stmt.where(Job.bench == query.bench)
        if query.search:
            pattern = f"%{_escape_like(query.search.lower())}%"
            searchable = (project_name, Job.simulation_name, Job.type, Job.bench, Job.status)
            stmt = stmt.where(or_(*(func.lower(c).like(pattern, escape="\\") for c in searchable)))
        return stmt, project_name

    @staticmethod
    def _ordering(query: JobQuery, project_name) -> list:
        if not query.sort_by:
            return [col(Job.id).asc()]
        column = project_name if query.sort_by == "project_name" else getattr(Job, query.sort_by)
        # NULL ranks above every value
        is_null = case((column.is_(None), 1), else_=0)
        if query.sort_order == "desc":
            return [is_null.desc(), column.desc(), col(Job.id).asc()]
        return [is_null.asc(), column.asc(), col(Job.id).asc()]

    def get_jobs(self, query: Optional[JobQuery] = None) -> List[JobWithProject]:
        query = query or JobQuery()
        stmt, project_name = self._listing(query, lambda name: (Job, name))
        stmt = stmt.order_by(*self._ordering(query, project_name))
        return [with_project(job, name) for job, name in self.session.exec(stmt).all()]

    def count_jobs_by_status(self, query: Optional[JobQuery] = None) -> StatusCounts:
        query = query or JobQuery()
        stmt, _ = self._listing(query, lambda name: (Job.status,))
        return count_statuses(self.session.exec(stmt).all())

    def get_job(self, job_id: int) -> Optional[Job]:
        return self.session.get(Job, job_id)

    def create_job(self, data: JobCreate) -> Job:
        now = utcnow()
        job = Job(**data.model_dump(), created_at=now, updated_at=now)
        self.session.add(job)
        self.session.commit()
        self.session.refresh(job)
        return job

    def update_job(self, job_id: int, changes: dict) -> Optional[Job]:
        job = self.session.get(Job, job_id)
        if job is None:
            return None
        for field, value in changes.items():
            setattr(job, field, list(value) if field == "components" else value)
        job.updated_at = utcnow()
        self.session.add(job)
        self.session.commit()
        self.session.refresh(job)
        return job

    def delete_job(self, job_id: int) -> bool:
        job = self.session.get(Job, job_id)
        if job is None:
            return False
        for record in self.get_job_files(job_id):
            self.session.delete(record)
        self.session.flush()
        self.session.delete(job)
        self.session.commit()
        return True

    # ── Files ───────────────────────────────────────
    def get_job_files(self, job_id: int) -> List[File]:
        stmt = select(File).where(File.job_id == job_id).order_by(col(File.id).asc())
        return list(self.session.exec(stmt).all())

    def create_file(self, data: FileCreate) -> File:
        record = File(**data.model_dump(), uploaded_at=utcnow())
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def get_file(self, file_id: int) -> Optional[File]:
        return self.session.get(File, file_id)

    def delete_file(self, file_id: int) -> bool:
        record = self.session.get(File, file_id)
        if record is None:
            return False
        self.session.delete(record)
        self.session.commit()
        return True


def get_repository(session: Session = Depends(get_session)) -> TrackerRepository:
    return SqlTrackerRepository(session)
