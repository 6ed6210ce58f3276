"""
Shared pytest fixtures for the SimTrack API tests.

Every test gets its own in-memory SQLite database and its own file store
directory. Routers are exercised through FastAPI's TestClient with the
session and storage dependencies overridden.
"""

import os
import tempfile
from datetime import date

import pytest

# Set test environment variables before importing app modules
_TEST_ROOT = tempfile.mkdtemp(prefix="simtrack-tests-")
os.environ["DB_URL"] = f"sqlite:///{_TEST_ROOT}/simtrack.sqlite"
os.environ["FILES_DIR"] = os.path.join(_TEST_ROOT, "files")
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["API_CORS_ORIGINS"] = "http://localhost:5173"

from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session

from simtrack_core.storage_backend import LocalBackend

from simtrack_api.auth_utils import hash_password
from simtrack_api.db import get_session, init_db, make_engine
from simtrack_api.main import app
from simtrack_api.memory_repository import InMemoryTrackerRepository
from simtrack_api.metrics import registry
from simtrack_api.repository import SqlTrackerRepository
from simtrack_api.routers.auth import reset_rate_limits
from simtrack_api.schemas import JobCreate, ProjectCreate
from simtrack_api.sessions import get_session_store
from simtrack_api.storage import get_file_store


TEST_USERNAME = "engineer"
TEST_PASSWORD = "engineer123"


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def engine():
    """A fresh in-memory database shared by every connection of one test."""
    test_engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def sql_repo(engine):
    with Session(engine) as session:
        yield SqlTrackerRepository(session)


@pytest.fixture(params=["sql", "memory"])
def repo(request, engine):
    """Both repository implementations, held to the same contract."""
    if request.param == "memory":
        yield InMemoryTrackerRepository()
    else:
        with Session(engine) as session:
            yield SqlTrackerRepository(session)


@pytest.fixture
def file_store(tmp_path):
    return LocalBackend(str(tmp_path / "files"))


# ============================================================================
# API Client Fixtures
# ============================================================================

@pytest.fixture
def client(engine, file_store):
    """TestClient wired to the per-test database and file store."""

    def _session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_file_store] = lambda: file_store
    reset_rate_limits()
    get_session_store().clear()
    registry.reset()

    with Session(engine) as session:
        SqlTrackerRepository(session).create_user(TEST_USERNAME, hash_password(TEST_PASSWORD))

    yield TestClient(app)

    app.dependency_overrides.clear()
    get_session_store().clear()


@pytest.fixture
def auth_client(client):
    """A client holding a valid session cookie."""
    response = client.post("/api/auth/login", json={"username": TEST_USERNAME, "password": TEST_PASSWORD})
    assert response.status_code == 200
    return client


@pytest.fixture
def project(auth_client):
    response = auth_client.post("/api/projects", json={"name": "AION36"})
    assert response.status_code == 201
    return response.json()


# ============================================================================
# Payload Helpers
# ============================================================================

def job_payload(project_id, **overrides):
    """camelCase job body as the dashboard sends it."""
    payload = {
        "projectId": project_id,
        "simulationName": "Static Analysis - Main Fork",
        "bench": "symmetric-bending",
        "type": "static",
        "dateRequest": "2024-01-15",
        "dateDue": "2024-02-15",
        "priority": 3,
        "status": "queued",
        "components": ["crown"],
    }
    payload.update(overrides)
    return payload


def job_create(project_id, **overrides):
    """Repository-level job input."""
    fields = dict(
        project_id=project_id,
        simulation_name="S1",
        bench="symmetric-bending",
        type="static",
        date_request=date(2024, 1, 15),
        date_due=None,
        priority=3,
        status="queued",
        components=["crown"],
    )
    fields.update(overrides)
    return JobCreate(**fields)


def project_create(name, archived=False):
    return ProjectCreate(name=name, archived=archived)
