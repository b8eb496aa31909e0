"""Tests for the FastAPI API endpoints."""

import pytest
from fastapi.testclient import TestClient

from mechanic.api.app import create_app
from mechanic.models.config import MechanicConfig
from mechanic.service.loop import MechanicService
from mechanic.storage.preferences import MemoryPreferenceStore
from mechanic.storage.settings import MemorySettingsStore


@pytest.fixture
def service(tmp_path):
    (tmp_path / "keep.epf").write_text(
        "# @task_type RECONCILING\n# @title Keep foo\n/instance/foo/bar=baz\n"
    )
    svc = MechanicService(
        store=MemoryPreferenceStore(),
        settings=MemorySettingsStore(),
        config=MechanicConfig(task_sources=[str(tmp_path)]),
    )
    svc.load_tasks()
    return svc


@pytest.fixture
def client(service):
    return TestClient(create_app(service=service))


@pytest.fixture
def task_id(service):
    return service.get_tasks()[0].id


class TestTaskEndpoints:
    def test_list_tasks(self, client):
        response = client.get("/tasks")
        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["title"] == "Keep foo"
        assert data[0]["kind"] == "ReconcilingPreferencesTask"
        assert data[0]["blocked"] is False

    def test_status_is_read_only(self, client, service, task_id):
        response = client.get(f"/tasks/{task_id}/status")
        assert response.status_code == 200
        assert response.json()["satisfied"] is False
        assert service.store.get("/instance/foo", "bar") is None

    def test_unknown_task(self, client):
        assert client.get("/tasks/nope/status").status_code == 404
        assert client.post("/tasks/nope/block").status_code == 404

    def test_block_and_unblock(self, client, service, task_id):
        assert client.post(f"/tasks/{task_id}/block").status_code == 200
        assert service.is_blocked(task_id)

        report = client.post("/service/trigger").json()
        assert report["outcomes"][0]["state"] == "blocked"

        assert client.delete(f"/tasks/{task_id}/block").status_code == 200
        assert not service.is_blocked(task_id)


class TestServiceEndpoints:
    def test_trigger_repairs(self, client, service, task_id):
        report = client.post("/service/trigger").json()
        assert report["outcomes"][0]["state"] == "repaired"
        assert service.store.get("/instance/foo", "bar") == "baz"

        status = client.get(f"/tasks/{task_id}/status").json()
        assert status["satisfied"] is True

    def test_status(self, client):
        client.post("/service/trigger")
        data = client.get("/service/status").json()
        assert data["status"] == "stopped"
        assert data["tasks"] == 1
        assert data["last_pass"].startswith("pass_")
        assert data["failed_task_ids"] == []

    def test_reload(self, client):
        data = client.post("/service/reload").json()
        assert data["loaded"] == 1
        assert data["errors"] == []

    def test_config_roundtrip(self, client, service):
        current = client.get("/service/config").json()
        assert current["use_md5"] is False

        current["use_md5"] = True
        response = client.put("/service/config", json=current)
        assert response.status_code == 200
        assert service.config.use_md5 is True

    def test_passes(self, client):
        client.post("/service/trigger")
        client.post("/service/trigger")
        assert len(client.get("/passes").json()) == 2
        assert len(client.get("/passes?limit=1").json()) == 1

    def test_config_update_reaches_built_tasks(self, client, service):
        task = service.get_tasks()[0]
        assert task.short_circuit is False

        current = client.get("/service/config").json()
        current["short_circuit_evaluation"] = True
        assert client.put("/service/config", json=current).status_code == 200

        assert task.short_circuit is True
