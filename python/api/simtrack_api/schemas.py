from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from simtrack_core.schemas import Bench, Conclusion, FileLabel, JobStatus, JobType


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ── Auth ─────────────────────────────────────────────

class LoginRequest(ApiModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class UserOut(ApiModel):
    id: int
    username: str


class UserEnvelope(ApiModel):
    user: UserOut


class MessageResponse(ApiModel):
    message: str


# ── Projects ─────────────────────────────────────────

class ProjectCreate(ApiModel):
    name: str = Field(min_length=1, max_length=200)
    archived: bool = False

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class ProjectResponse(ApiModel):
    id: int
    name: str
    archived: bool
    created_at: datetime
    job_count: int = 0
    latest_job_status: Optional[str] = None


# ── Jobs ─────────────────────────────────────────────

class JobCreate(ApiModel):
    project_id: int
    simulation_name: str = Field(min_length=1, max_length=300)
    bench: Bench
    type: JobType
    date_request: date
    date_due: Optional[date] = None
    priority: int = Field(ge=1, le=5)
    status: JobStatus = "queued"
    components: List[str] = Field(default_factory=list)
    confidence: Optional[int] = Field(default=None, ge=0, le=100)
    conclusion: Optional[Conclusion] = None
    report_path: Optional[str] = None
    parent_job_id: Optional[int] = None
    notes: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _null_components(cls, data):
        if isinstance(data, dict) and data.get("components", ()) is None:
            data = {**data, "components": []}
        return data


# Fields a client may not clear with an explicit null.
_REQUIRED_ON_UPDATE = frozenset({
    "project_id", "simulation_name", "bench", "type", "date_request", "priority", "status", "components",
})


class JobUpdate(ApiModel):
    """Partial update: only the fields present in the payload are applied."""

    project_id: Optional[int] = None
    simulation_name: Optional[str] = Field(default=None, min_length=1, max_length=300)
    bench: Optional[Bench] = None
    type: Optional[JobType] = None
    date_request: Optional[date] = None
    date_due: Optional[date] = None
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    status: Optional[JobStatus] = None
    components: Optional[List[str]] = None
    confidence: Optional[int] = Field(default=None, ge=0, le=100)
    conclusion: Optional[Conclusion] = None
    report_path: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _no_null_for_required(self):
        cleared = sorted(
            name for name in self.model_fields_set
            if name in _REQUIRED_ON_UPDATE and getattr(self, name) is None
        )
        if cleared:
            raise ValueError(f"fields cannot be null: {', '.join(cleared)}")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class AnalysisUpdate(ApiModel):
    confidence: Optional[int] = Field(default=None, ge=0, le=100)
    conclusion: Optional[Conclusion] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class IterationCreate(ApiModel):
    """Overrides for a new iteration; anything omitted comes from the base job."""

    simulation_name: Optional[str] = Field(default=None, min_length=1, max_length=300)
    date_request: Optional[date] = None
    date_due: Optional[date] = None
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    components: Optional[List[str]] = None
    notes: Optional[str] = None


class JobResponse(ApiModel):
    id: int
    project_id: int
    simulation_name: str
    bench: str
    type: str
    date_request: date
    date_due: Optional[date] = None
    priority: int
    status: str
    components: List[str] = Field(default_factory=list)
    confidence: Optional[int] = None
    conclusion: Optional[str] = None
    report_path: Optional[str] = None
    parent_job_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class JobWithProject(JobResponse):
    project_name: str


# ── Files ────────────────────────────────────────────

class FileCreate(ApiModel):
    job_id: int
    label: FileLabel
    filename: str
    path: str
    mimetype: str
    size: int = Field(ge=0)


class JobFileResponse(ApiModel):
    id: int
    job_id: int
    label: str
    filename: str
    path: str
    mimetype: str
    size: int
    uploaded_at: datetime
