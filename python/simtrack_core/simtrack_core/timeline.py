"""Project timeline (Gantt) aggregation over a job listing."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List

from .schemas import ProjectTimeline, TimelineJob


def build_timeline(rows: Iterable[Any]) -> List[ProjectTimeline]:
    """Group job rows per project and compute each project's date span.

    ``first_request`` is the earliest request date of the project's jobs;
    ``last_due`` the latest due date, starting from the first job's due date
    (or request date when it has none). Projects are ordered by
    ``first_request``, then by name.
    """
    timelines: Dict[int, ProjectTimeline] = {}

    for row in rows:
        entry = timelines.get(row.project_id)
        if entry is None:
            entry = ProjectTimeline(
                project_id=row.project_id,
                project_name=row.project_name,
                first_request=row.date_request,
                last_due=row.date_due or row.date_request,
            )
            timelines[row.project_id] = entry

        entry.jobs.append(TimelineJob(
            id=row.id,
            simulation_name=row.simulation_name,
            status=row.status,
            priority=row.priority,
            date_request=row.date_request,
            date_due=row.date_due,
        ))

        if row.date_request < entry.first_request:
            entry.first_request = row.date_request
        if row.date_due and row.date_due > entry.last_due:
            entry.last_due = row.date_due

    return sorted(timelines.values(), key=lambda t: (t.first_request, t.project_name))
