"""Tests for job routes: listing, CRUD, stats, timeline, iterations, analysis."""

import pytest

from simtrack_api.metrics import registry

from conftest import job_payload


@pytest.fixture
def jobs(auth_client, project):
    """Three jobs in one active project plus one in an archived project."""
    legacy = auth_client.post("/api/projects", json={"name": "Legacy-OldProject", "archived": True}).json()
    created = [
        auth_client.post("/api/jobs", json=job_payload(
            project["id"], simulationName="Main Fork", priority=4, status="running", dateDue="2024-02-15",
        )).json(),
        auth_client.post("/api/jobs", json=job_payload(
            project["id"], simulationName="Brake Load", bench="brake-load", type="fatigue",
            priority=2, status="queued", dateDue=None,
        )).json(),
        auth_client.post("/api/jobs", json=job_payload(
            project["id"], simulationName="Crown Check", priority=1, status="done", dateDue="2024-01-20",
        )).json(),
        auth_client.post("/api/jobs", json=job_payload(
            legacy["id"], simulationName="Old Legacy Test", bench="unknown", status="done",
        )).json(),
    ]
    return created


def ids(rows):
    return [r["id"] for r in rows]


class TestCreateJob:
    def test_create_returns_job(self, auth_client, project):
        response = auth_client.post("/api/jobs", json=job_payload(project["id"]))
        assert response.status_code == 201
        body = response.json()
        assert body["id"] > 0
        assert body["projectId"] == project["id"]
        assert body["simulationName"] == "Static Analysis - Main Fork"
        assert body["components"] == ["crown"]
        assert body["status"] == "queued"
        assert body["createdAt"] and body["updatedAt"]
        assert registry.value("simtrack_jobs_created_total", {"bench": "symmetric-bending", "type": "static"}) == 1

    def test_status_defaults_to_queued(self, auth_client, project):
        payload = job_payload(project["id"])
        del payload["status"]
        assert auth_client.post("/api/jobs", json=payload).json()["status"] == "queued"

    def test_components_default_to_empty(self, auth_client, project):
        payload = job_payload(project["id"])
        del payload["components"]
        assert auth_client.post("/api/jobs", json=payload).json()["components"] == []

    @pytest.mark.parametrize(
        "override",
        [
            {"priority": 0},
            {"priority": 6},
            {"confidence": 101},
            {"bench": "static"},
            {"type": "modal"},
            {"status": "paused"},
            {"dateRequest": "not-a-date"},
            {"simulationName": ""},
            {"conclusion": "Looks fine"},
        ],
    )
    def test_invalid_payload_is_bad_request(self, auth_client, project, override):
        response = auth_client.post("/api/jobs", json=job_payload(project["id"], **override))
        assert response.status_code == 400
        body = response.json()
        assert body["detail"] == "Invalid request data"
        assert body["errors"]

    def test_unknown_project_is_bad_request(self, auth_client):
        response = auth_client.post("/api/jobs", json=job_payload(999))
        assert response.status_code == 400


class TestGetUpdateDelete:
    def test_get_job(self, auth_client, jobs):
        response = auth_client.get(f"/api/jobs/{jobs[0]['id']}")
        assert response.status_code == 200
        assert response.json() == jobs[0]

    def test_get_missing_job(self, auth_client):
        assert auth_client.get("/api/jobs/999").status_code == 404

    def test_partial_update(self, auth_client, jobs):
        original = jobs[0]
        response = auth_client.put(f"/api/jobs/{original['id']}", json={"status": "done"})
        assert response.status_code == 200
        updated = response.json()
        assert updated["status"] == "done"
        assert updated["updatedAt"] >= original["updatedAt"]
        for key, value in original.items():
            if key not in ("status", "updatedAt"):
                assert updated[key] == value, key

    def test_update_replaces_components(self, auth_client, jobs):
        response = auth_client.put(f"/api/jobs/{jobs[0]['id']}", json={"components": ["steerer", "crown"]})
        assert response.json()["components"] == ["steerer", "crown"]

    def test_update_can_clear_optional_fields(self, auth_client, jobs):
        response = auth_client.put(f"/api/jobs/{jobs[0]['id']}", json={"dateDue": None})
        assert response.status_code == 200
        assert response.json()["dateDue"] is None

    def test_update_rejects_null_required_field(self, auth_client, jobs):
        response = auth_client.put(f"/api/jobs/{jobs[0]['id']}", json={"priority": None})
        assert response.status_code == 400

    def test_update_rejects_invalid_value(self, auth_client, jobs):
        response = auth_client.put(f"/api/jobs/{jobs[0]['id']}", json={"priority": 9})
        assert response.status_code == 400

    def test_update_missing_job(self, auth_client):
        assert auth_client.put("/api/jobs/999", json={"status": "done"}).status_code == 404

    def test_delete_job(self, auth_client, jobs):
        job_id = jobs[0]["id"]
        response = auth_client.delete(f"/api/jobs/{job_id}")
        assert response.status_code == 200
        assert auth_client.get(f"/api/jobs/{job_id}").status_code == 404
        assert auth_client.delete(f"/api/jobs/{job_id}").status_code == 404


class TestListJobs:
    def test_default_listing_excludes_archived(self, auth_client, project, jobs):
        listed = auth_client.get("/api/jobs").json()
        assert ids(listed) == ids(jobs[:3])
        assert {j["projectName"] for j in listed} == {project["name"]}

    def test_include_archived(self, auth_client, jobs):
        listed = auth_client.get("/api/jobs", params={"includeArchived": "true"}).json()
        assert ids(listed) == ids(jobs)

    def test_filters_combine(self, auth_client, project, jobs):
        listed = auth_client.get(
            "/api/jobs", params={"projectId": project["id"], "status": "done", "bench": "symmetric-bending"}
        ).json()
        assert ids(listed) == [jobs[2]["id"]]

    def test_search(self, auth_client, jobs):
        assert ids(auth_client.get("/api/jobs", params={"search": "brake"}).json()) == [jobs[1]["id"]]

    def test_blank_parameters_ignored(self, auth_client, jobs):
        listed = auth_client.get("/api/jobs", params={"status": "", "bench": "", "search": "", "sortBy": ""}).json()
        assert ids(listed) == ids(jobs[:3])

    def test_sort_by_priority(self, auth_client, jobs):
        asc = auth_client.get("/api/jobs", params={"sortBy": "priority", "sortOrder": "asc"}).json()
        desc = auth_client.get("/api/jobs", params={"sortBy": "priority", "sortOrder": "desc"}).json()
        assert [j["priority"] for j in asc] == [1, 2, 4]
        assert [j["priority"] for j in desc] == [4, 2, 1]

    def test_sort_nulls_last_ascending(self, auth_client, jobs):
        listed = auth_client.get("/api/jobs", params={"sortBy": "dateDue"}).json()
        assert [j["dateDue"] for j in listed] == ["2024-01-20", "2024-02-15", None]

    def test_unknown_sort_field(self, auth_client, jobs):
        response = auth_client.get("/api/jobs", params={"sortBy": "components"})
        assert response.status_code == 400

    def test_invalid_filter_value(self, auth_client):
        assert auth_client.get("/api/jobs", params={"status": "paused"}).status_code == 400
        assert auth_client.get("/api/jobs", params={"projectId": "abc"}).status_code == 400

    def test_empty_listing(self, auth_client):
        response = auth_client.get("/api/jobs")
        assert response.status_code == 200
        assert response.json() == []


class TestDashboardViews:
    def test_stats(self, auth_client, jobs):
        response = auth_client.get("/api/jobs/stats")
        assert response.status_code == 200
        assert response.json() == {"queued": 1, "running": 1, "done": 1, "failed": 0, "total": 3}

    def test_stats_include_archived(self, auth_client, jobs):
        stats = auth_client.get("/api/jobs/stats", params={"includeArchived": "true"}).json()
        assert stats["done"] == 2
        assert stats["total"] == 4

    def test_timeline(self, auth_client, project, jobs):
        timeline = auth_client.get("/api/jobs/timeline").json()
        assert len(timeline) == 1
        entry = timeline[0]
        assert entry["projectId"] == project["id"]
        assert entry["projectName"] == project["name"]
        assert entry["firstRequest"] == "2024-01-15"
        assert entry["lastDue"] == "2024-02-15"
        assert [j["id"] for j in entry["jobs"]] == ids(jobs[:3])


class TestIterations:
    def test_iteration_copies_setup(self, auth_client, jobs):
        base = jobs[0]
        response = auth_client.post(f"/api/jobs/{base['id']}/iterations", json={"dateRequest": "2024-03-01"})
        assert response.status_code == 201
        iteration = response.json()
        assert iteration["id"] != base["id"]
        assert iteration["parentJobId"] == base["id"]
        assert iteration["status"] == "queued"
        assert iteration["projectId"] == base["projectId"]
        assert iteration["bench"] == base["bench"]
        assert iteration["type"] == base["type"]
        assert iteration["components"] == base["components"]
        assert iteration["simulationName"] == "Main Fork - Iteration"
        assert iteration["dateRequest"] == "2024-03-01"

    def test_iteration_overrides(self, auth_client, jobs):
        response = auth_client.post(
            f"/api/jobs/{jobs[0]['id']}/iterations",
            json={"simulationName": "Main Fork v2", "priority": 5, "components": ["steerer"], "notes": "thicker wall"},
        )
        iteration = response.json()
        assert iteration["simulationName"] == "Main Fork v2"
        assert iteration["priority"] == 5
        assert iteration["components"] == ["steerer"]
        assert iteration["notes"] == "thicker wall"

    def test_iteration_of_missing_job(self, auth_client):
        assert auth_client.post("/api/jobs/999/iterations", json={}).status_code == 404


class TestAnalysis:
    def test_record_analysis(self, auth_client, jobs):
        response = auth_client.put(
            f"/api/jobs/{jobs[2]['id']}/analysis", json={"confidence": 85, "conclusion": "Valid Design"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["confidence"] == 85
        assert body["conclusion"] == "Valid Design"

    def test_analysis_validation(self, auth_client, jobs):
        job_id = jobs[2]["id"]
        assert auth_client.put(f"/api/jobs/{job_id}/analysis", json={"confidence": -1}).status_code == 400
        assert auth_client.put(f"/api/jobs/{job_id}/analysis", json={"conclusion": "maybe"}).status_code == 400

    def test_analysis_missing_job(self, auth_client):
        assert auth_client.put("/api/jobs/999/analysis", json={"confidence": 50}).status_code == 404
