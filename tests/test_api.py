"""Tests for the HTTP session API."""
import pytest
from fastapi.testclient import TestClient

from workflow_testlab.config import Settings, get_settings
from workflow_testlab.main import app
from workflow_testlab.workflows import deal_router_graph


@pytest.fixture
def client():
    app.dependency_overrides[get_settings] = lambda: Settings(_env_file=None, node_delay_seconds=0, log_json=False)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def session_id(client):
    nodes, edges = deal_router_graph()
    response = client.post("/sessions", json={"nodes": nodes, "edges": edges})
    assert response.status_code == 200
    return response.json()["session_id"]


def test_run_scenario(client, session_id):
    response = client.post(f"/sessions/{session_id}/start", json={"scenario_id": "high_value_deal"})

    assert response.status_code == 200
    state = response.json()["state"]
    assert state["is_running"] is False
    assert state["execution_path"] == ["deal-trigger", "value-check", "escalate-task", "notify-team"]
    assert state["node_states"]["log-note"]["status"] == "skipped"

    response = client.get(f"/sessions/{session_id}/state")
    assert response.json()["state"]["execution_path"][-1] == "notify-team"
    assert response.json()["updates"] > 0


def test_run_custom_payload(client, session_id):
    response = client.post(
        f"/sessions/{session_id}/start",
        json={"payload": {"deal_value": 10, "deal_name": "Tiny"}},
    )

    state = response.json()["state"]
    assert state["scenario_name"] == "Custom Payload"
    assert state["execution_path"] == ["deal-trigger", "value-check", "log-note"]


def test_invalid_payload_is_rejected(client, session_id):
    response = client.post(f"/sessions/{session_id}/start", json={"payload": "not json"})

    assert response.status_code == 422
    assert response.json()["detail"]["errors"][0]["line"] == 1
    assert client.get(f"/sessions/{session_id}/state").json()["state"]["execution_path"] == []


def test_unknown_scenario(client, session_id):
    response = client.post(f"/sessions/{session_id}/start", json={"scenario_id": "nope"})
    assert response.status_code == 404


def test_unknown_session(client):
    assert client.get("/sessions/missing/state").status_code == 404
    assert client.post("/sessions/missing/pause").status_code == 404


def test_malformed_graph(client):
    response = client.post("/sessions", json={"nodes": [{"type": "trigger"}], "edges": []})
    assert response.status_code == 400


def test_speed_and_reset(client, session_id):
    assert client.post(f"/sessions/{session_id}/speed", json={"multiplier": 0}).status_code == 400

    response = client.post(f"/sessions/{session_id}/speed", json={"multiplier": 2.5})
    assert response.json()["state"]["speed_multiplier"] == 2.5

    client.post(f"/sessions/{session_id}/start", json={})
    response = client.post(f"/sessions/{session_id}/reset")
    state = response.json()["state"]
    assert state["execution_path"] == []
    assert state["speed_multiplier"] == 1.0


def test_pause_resume_stop_when_idle(client, session_id):
    assert client.post(f"/sessions/{session_id}/pause").json()["state"]["is_paused"] is True
    assert client.post(f"/sessions/{session_id}/resume").json()["state"]["is_paused"] is False
    assert client.post(f"/sessions/{session_id}/stop").json()["state"]["is_running"] is False


def test_validate_payload(client):
    response = client.post("/payloads/validate", json={"payload": "[1, 2]"})
    assert response.json()["is_valid"] is False

    response = client.post("/payloads/validate", json={"payload": {"deal_value": 1}})
    assert response.json()["is_valid"] is True


def test_generated_test_data(client):
    response = client.get("/payloads/test-data/deal_created", params={"scenario": "high_value_deal"})
    assert response.json()["data"]["deal_value"] == 150000


def test_catalogues(client):
    scenarios = client.get("/scenarios").json()["scenarios"]
    assert "meeting_recorded" in {s["id"] for s in scenarios}

    executors = client.get("/executors").json()["executors"]
    assert {"trigger", "condition", "conditionalBranch", "fathomWebhook", "databaseWrite"} <= set(executors)


def test_example_deal_router(client):
    response = client.post("/example/run-deal-router")
    assert response.status_code == 200
    assert "notify-team" in response.json()["state"]["execution_path"]

    response = client.post("/example/run-deal-router", json={"scenario_id": "low_value_deal"})
    assert response.json()["state"]["execution_path"][-1] == "log-note"


def test_delete_session(client, session_id):
    client.post(f"/sessions/{session_id}/start", json={"scenario_id": "low_value_deal"})

    response = client.delete(f"/sessions/{session_id}")
    assert response.status_code == 200
    assert response.json()["deleted"] is True
    assert client.get(f"/sessions/{session_id}/state").status_code == 404
    assert client.delete(f"/sessions/{session_id}").status_code == 404
