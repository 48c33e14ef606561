from __future__ import annotations

from fastapi.testclient import TestClient

from ratekeeper.adapters.store import InMemoryDocumentStore
from ratekeeper.core.app_factory import create_app


client = TestClient(create_app(store=InMemoryDocumentStore()))


def test_preserves_incoming_request_id_header():
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing():
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated

    duration = resp.headers.get("X-Request-Duration-ms")
    assert duration is not None


def test_request_id_echoed_on_auth_failure():
    resp = client.post(
        "/v1/rate-limits/check",
        json={"actor_id": "alice", "action_type": "analytics"},
        headers={"X-Request-ID": "trace-me"},
    )

    assert resp.status_code == 401
    assert resp.headers.get("X-Request-ID") == "trace-me"
