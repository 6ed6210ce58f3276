"""Demo data loaded into an empty database at startup."""
from __future__ import annotations

import logging
from datetime import date

from .auth_utils import hash_password
from .repository import TrackerRepository
from .schemas import JobCreate, ProjectCreate

logger = logging.getLogger("simtrack.api.seed")

DEMO_USERS = (
    ("admin", "admin"),
    ("engineer", "engineer123"),
)

DEMO_PROJECTS = (
    ("AION36", False),
    ("NRX32-IL", False),
    ("Legacy-OldProject", True),
)

DEMO_JOBS = (
    dict(project="AION36", simulation_name="Static Analysis - Main Fork", bench="symmetric-bending",
         type="static", date_request=date(2024, 1, 15), date_due=date(2024, 2, 15), priority=4,
         status="running", components=["lower_monolith", "crown"]),
    dict(project="NRX32-IL", simulation_name="Fatigue Analysis - Brake Load", bench="brake-load",
         type="fatigue", date_request=date(2024, 1, 10), date_due=date(2024, 1, 30), priority=3,
         status="queued", components=["stanchion_left", "stanchion_right", "steerer"]),
    dict(project="Legacy-OldProject", simulation_name="Old Legacy Test", bench="unknown",
         type="static", date_request=date(2023, 12, 1), date_due=None, priority=2,
         status="done", components=["lower_monolith"], confidence=85, conclusion="Valid Design"),
)


def seed_demo_data(repo: TrackerRepository) -> bool:
    """Insert demo users, projects and jobs unless users already exist.

    Returns True when data was inserted.
    """
    if repo.count_users() > 0:
        return False

    for username, password in DEMO_USERS:
        repo.create_user(username, hash_password(password))

    project_ids = {}
    for name, archived in DEMO_PROJECTS:
        project_ids[name] = repo.create_project(ProjectCreate(name=name, archived=archived)).id

    for spec in DEMO_JOBS:
        spec = dict(spec)
        project_id = project_ids[spec.pop("project")]
        repo.create_job(JobCreate(project_id=project_id, **spec))

    logger.info(
        "Seeded demo data",
        extra={"event": "seed.demo_data", "size": len(DEMO_JOBS)},
    )
    return True
