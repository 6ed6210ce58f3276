from __future__ import annotations

import re
from datetime import date
from typing import Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

Bench = Literal["symmetric-bending", "brake-load", "unknown"]
JobType = Literal["static", "fatigue"]
JobStatus = Literal["queued", "running", "done", "failed"]
FileLabel = Literal["mesh", "inp_file", "result_log", "report", "general"]
Conclusion = Literal["Valid Design", "Revise Design", "no convergence", "other"]
SortOrder = Literal["asc", "desc"]

BENCHES: tuple[str, ...] = get_args(Bench)
JOB_TYPES: tuple[str, ...] = get_args(JobType)
JOB_STATUSES: tuple[str, ...] = get_args(JobStatus)
FILE_LABELS: tuple[str, ...] = get_args(FileLabel)
CONCLUSIONS: tuple[str, ...] = get_args(Conclusion)

# Name shown for jobs whose project row is missing.
UNKNOWN_PROJECT = "Unknown Project"

# Job fields a listing can be ordered by. ``components`` is a list and has
# no meaningful single-key order.
SORTABLE_FIELDS: frozenset[str] = frozenset({
    "id",
    "project_id",
    "project_name",
    "simulation_name",
    "bench",
    "type",
    "date_request",
    "date_due",
    "priority",
    "status",
    "confidence",
    "conclusion",
    "report_path",
    "parent_job_id",
    "created_at",
    "updated_at",
})

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(name: str) -> str:
    """``dateDue`` -> ``date_due``; snake_case input passes through."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


class JobQuery(BaseModel):
    """Filter and ordering options for a job listing.

    Every supplied predicate must hold for a row to be returned. Blank
    strings (``?status=``) count as "not supplied".
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    status: Optional[JobStatus] = None
    bench: Optional[Bench] = None
    search: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: SortOrder = "asc"
    project_id: Optional[int] = None
    include_archived: bool = False

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data):
        if isinstance(data, dict):
            return {k: (None if isinstance(v, str) and not v.strip() else v) for k, v in data.items()}
        return data

    @field_validator("sort_order", mode="before")
    @classmethod
    def _default_sort_order(cls, value):
        return "asc" if value is None else str(value).lower()

    @field_validator("include_archived", mode="before")
    @classmethod
    def _default_include_archived(cls, value):
        return False if value is None else value

    @field_validator("search")
    @classmethod
    def _strip_search(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value is not None else None

    @field_validator("sort_by")
    @classmethod
    def _check_sort_by(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        name = to_snake(value.strip())
        if name not in SORTABLE_FIELDS:
            raise ValueError(
                f"cannot sort by '{value}'; expected one of {', '.join(sorted(SORTABLE_FIELDS))}"
            )
        return name


class StatusCounts(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    queued: int = 0
    running: int = 0
    done: int = 0
    failed: int = 0
    total: int = 0


class TimelineJob(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    simulation_name: str
    status: str
    priority: int
    date_request: date
    date_due: Optional[date] = None


class ProjectTimeline(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    project_id: int
    project_name: str
    first_request: date
    last_due: date
    jobs: list[TimelineJob] = Field(default_factory=list)
