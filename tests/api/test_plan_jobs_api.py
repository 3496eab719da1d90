"""API tests for the plan job trigger, check-ins and base plan state."""

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app.api.dependencies.services import get_orchestrator
from app.jobs.orchestrator import BasePlanJobOrchestrator
from app.main import app

SNAPSHOT = {"goal": "WEIGHT_LOSS", "trainingDays": 3, "timezone": "Europe/Berlin"}


@pytest.fixture
def dispatched(monkeypatch) -> list[bool]:
    calls: list[bool] = []
    monkeypatch.setattr("app.api.plan_jobs.dispatch_plan_queue", lambda: calls.append(True))
    return calls


@pytest.fixture
def client(db_engine, fake_client, notifier):
    app.dependency_overrides[get_orchestrator] = lambda: BasePlanJobOrchestrator(fake_client, notifier)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_requires_bearer_token(client):
    response = client.post("/plan-jobs", json={"profileSnapshot": SNAPSHOT})

    assert response.status_code == 401


def test_rejects_token_signed_with_another_key(client, auth_headers):
    auth_headers()

    token = jwt.encode({"sub": "user-1"}, "wrong-key", algorithm="HS256")

    response = client.post(
        "/plan-jobs", json={"profileSnapshot": SNAPSHOT}, headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == 401


def test_create_job_dispatches_worker_once(client, auth_headers, dispatched):
    headers = auth_headers()

    created = client.post("/plan-jobs", json={"profileSnapshot": SNAPSHOT}, headers=headers)
    duplicate = client.post("/plan-jobs", json={"profileSnapshot": SNAPSHOT}, headers=headers)

    assert created.status_code == 200
    assert created.json()["status"] == "created"
    assert created.json()["jobId"]
    assert duplicate.json() == {
        "status": "existing",
        "jobId": created.json()["jobId"],
        "planId": None,
        "message": None,
    }
    assert dispatched == [True]


def test_jobs_are_scoped_per_user(client, auth_headers, dispatched):
    first = client.post("/plan-jobs", json={"profileSnapshot": SNAPSHOT}, headers=auth_headers("user-1"))
    second = client.post("/plan-jobs", json={"profileSnapshot": SNAPSHOT}, headers=auth_headers("user-2"))

    assert first.json()["status"] == second.json()["status"] == "created"
    assert first.json()["jobId"] != second.json()["jobId"]


@pytest.mark.parametrize(
    "body",
    [
        {"profileSnapshot": {"goal": "WEIGHT_LOSS"}},
        {"profileSnapshot": SNAPSHOT, "isRedo": True},
        {"profileSnapshot": SNAPSHOT, "isRedo": True, "redoReason": "Too hard"},
    ],
)
def test_invalid_requests_are_400(client, auth_headers, dispatched, body):
    response = client.post("/plan-jobs", json=body, headers=auth_headers())

    assert response.status_code == 400
    assert dispatched == []


def test_checkins_are_immutable(client, auth_headers):
    headers = auth_headers()
    body = {"date": "2026-03-02", "energy": 7, "sleepHours": 7.5, "soreness": ["legs"]}

    created = client.post("/checkins", json=body, headers=headers)
    duplicate = client.post("/checkins", json={**body, "energy": 3}, headers=headers)

    assert created.status_code == 201
    assert created.json()["date"] == "2026-03-02"
    assert duplicate.status_code == 409


def test_base_plan_state_starts_idle(client, auth_headers):
    response = client.get("/base-plan/state", headers=auth_headers())

    assert response.status_code == 200
    assert response.json()["status"] == "idle"
    assert response.json()["verified"] is False


def test_verify_sets_flag(client, auth_headers):
    headers = auth_headers()

    assert client.post("/base-plan/verify", headers=headers).json()["verified"] is True
    assert client.post("/base-plan/reset", headers=headers).json() == {
        "status": "idle",
        "jobId": None,
        "startedAt": None,
        "completedAt": None,
        "error": None,
        "verified": True,
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_plans_listing_is_empty_for_new_user(client, auth_headers):
    response = client.get("/base-plan/plans", params={"include_archived": True}, headers=auth_headers())

    assert response.status_code == 200
    assert response.json() == []
