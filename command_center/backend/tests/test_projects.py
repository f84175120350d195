"""Project and training job endpoints."""

import pytest
from fastapi.testclient import TestClient

from command_center.backend.core.app import create_app
from command_center.backend.core.config import ServiceConfiguration
from command_center.backend.models import get_db


@pytest.fixture
def client(session_factory):
    app = create_app(config=ServiceConfiguration())

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def project(client, make_connection):
    response = client.post(
        "/api/dgx/projects",
        json={
            "connection_id": make_connection(),
            "name": "llama-finetune",
            "project_type": "training",
            "remote_path": "/home/ubuntu/llama",
            "config": {"gpus": 8},
        },
    )
    assert response.status_code == 200
    return response.json()["data"]


@pytest.fixture
def job(client, project):
    response = client.post(
        "/api/dgx/jobs",
        json={"project_id": project["id"], "name": "lora-r16", "model_name": "llama-3-8b"},
    )
    assert response.status_code == 200
    return response.json()["data"]


class TestProjects:
    def test_create(self, project):
        assert project["name"] == "llama-finetune"
        assert project["status"] == "active"
        assert project["config"] == {"gpus": 8}

    def test_create_requires_known_connection(self, client):
        response = client.post(
            "/api/dgx/projects", json={"connection_id": "missing", "name": "x"}
        )
        assert response.status_code == 404
        assert response.json()["detail"]["success"] is False

    def test_create_requires_name(self, client, make_connection):
        response = client.post(
            "/api/dgx/projects", json={"connection_id": make_connection()}
        )
        assert response.status_code == 422

    def test_list_filters_by_connection(self, client, project, make_connection):
        other = make_connection(name="other")
        client.post("/api/dgx/projects", json={"connection_id": other, "name": "sd-xl"})

        everything = client.get("/api/dgx/projects").json()["data"]
        mine = client.get(
            "/api/dgx/projects", params={"connection_id": project["connection_id"]}
        ).json()["data"]

        assert len(everything) == 2
        assert [p["id"] for p in mine] == [project["id"]]

    def test_get_includes_jobs(self, client, project, job):
        data = client.get(f"/api/dgx/projects/{project['id']}").json()["data"]
        assert [j["id"] for j in data["jobs"]] == [job["id"]]

    def test_get_unknown(self, client):
        assert client.get("/api/dgx/projects/missing").status_code == 404

    def test_update(self, client, project):
        response = client.put(
            f"/api/dgx/projects/{project['id']}",
            json={"status": "archived", "description": "done"},
        )
        data = response.json()["data"]
        assert data["status"] == "archived"
        assert data["description"] == "done"
        assert data["name"] == "llama-finetune"

    def test_update_without_fields(self, client, project):
        assert client.put(f"/api/dgx/projects/{project['id']}", json={}).status_code == 400

    def test_delete_removes_jobs_and_unlinks_operations(
        self, client, project, job, make_operation, load_operation
    ):
        operation_id = make_operation(
            project["connection_id"], pid=100, project_id=project["id"]
        )

        response = client.delete(f"/api/dgx/projects/{project['id']}")

        assert response.json()["data"] == {"deleted": project["id"]}
        assert client.get(f"/api/dgx/projects/{project['id']}").status_code == 404
        assert client.get(f"/api/dgx/jobs/{job['id']}").status_code == 404
        assert load_operation(operation_id).project_id is None

    def test_delete_unknown(self, client):
        assert client.delete("/api/dgx/projects/missing").status_code == 404


class TestTrainingJobs:
    def test_create(self, job, project):
        assert job["project_id"] == project["id"]
        assert job["status"] == "pending"
        assert job["started_at"] is None

    def test_create_requires_known_project(self, client):
        response = client.post("/api/dgx/jobs", json={"project_id": "missing", "name": "x"})
        assert response.status_code == 404

    def test_list_filters_by_project(self, client, project, job, make_connection):
        other = client.post(
            "/api/dgx/projects",
            json={"connection_id": make_connection(name="other"), "name": "other"},
        ).json()["data"]
        client.post("/api/dgx/jobs", json={"project_id": other["id"], "name": "baseline"})

        assert len(client.get("/api/dgx/jobs").json()["data"]) == 2
        filtered = client.get("/api/dgx/jobs", params={"project_id": project["id"]})
        assert [j["id"] for j in filtered.json()["data"]] == [job["id"]]

    def test_running_then_completed_stamps_times(self, client, job):
        running = client.put(f"/api/dgx/jobs/{job['id']}", json={"status": "running"})
        data = running.json()["data"]
        assert data["status"] == "running"
        assert data["started_at"] is not None
        assert data["completed_at"] is None

        completed = client.put(
            f"/api/dgx/jobs/{job['id']}",
            json={"status": "completed", "metrics": {"loss": 0.12}},
        )
        data = completed.json()["data"]
        assert data["status"] == "completed"
        assert data["completed_at"] is not None
        assert data["metrics"] == {"loss": 0.12}

    def test_update_rejects_unknown_status(self, client, job):
        response = client.put(f"/api/dgx/jobs/{job['id']}", json={"status": "exploded"})
        assert response.status_code == 422

    def test_update_without_fields(self, client, job):
        assert client.put(f"/api/dgx/jobs/{job['id']}", json={}).status_code == 400

    def test_delete(self, client, job):
        response = client.delete(f"/api/dgx/jobs/{job['id']}")
        assert response.json()["data"] == {"deleted": job["id"]}
        assert client.get(f"/api/dgx/jobs/{job['id']}").status_code == 404
