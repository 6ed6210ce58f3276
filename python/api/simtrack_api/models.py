from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer
from sqlmodel import JSON, Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    password_hash: str


class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    archived: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)


class Job(SQLModel, table=True):
    __tablename__ = "jobs"

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(
        sa_column=Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    simulation_name: str
    bench: str  # symmetric-bending|brake-load|unknown
    type: str  # static|fatigue
    date_request: date
    date_due: Optional[date] = None
    priority: int  # 1-5
    status: str = Field(default="queued", index=True)  # queued|running|done|failed
    components: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Engineer's analysis of the result
    confidence: Optional[int] = None  # 0-100
    conclusion: Optional[str] = None
    report_path: Optional[str] = None

    # Iteration lineage
    parent_job_id: Optional[int] = Field(default=None, index=True)
    notes: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class File(SQLModel, table=True):
    __tablename__ = "files"

    id: Optional[int] = Field(default=None, primary_key=True)
    job_id: int = Field(
        sa_column=Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    label: str  # mesh|inp_file|result_log|report|general
    filename: str
    path: str  # storage key, "<job_id>/<label>_<ms><ext>"
    mimetype: str
    size: int
    uploaded_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
