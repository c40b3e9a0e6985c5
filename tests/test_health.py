"""Tests for the health endpoint."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from iot_presence.main import app
from iot_presence.database import get_db


def listener_snapshot(state="consuming", **overrides):
    snapshot = {
        "state": state, "retry_count": 0, "processed": 12, "malformed": 1, "failed": 0,
        "last_event_at": None, "connected_since": None, "last_error": None,
    }
    snapshot.update(overrides)
    return snapshot


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    # Not used as a context manager: startup hooks (and the real listener) stay off
    yield TestClient(app)
    app.dependency_overrides.clear()
    if hasattr(app.state, "listener"):
        del app.state.listener


class TestHealth:
    def test_ok_without_listener(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["database"] == "ok"
        assert body["ingestion"] is None

    def test_reports_listener_snapshot(self, client):
        listener = MagicMock()
        listener.snapshot.return_value = listener_snapshot()
        app.state.listener = listener

        body = client.get("/api/v1/health").json()
        assert body["status"] == "ok"
        assert body["ingestion"]["state"] == "consuming"
        assert body["ingestion"]["processed"] == 12

    @pytest.mark.parametrize("state", ["backoff", "failed"])
    def test_degraded_when_listener_not_consuming(self, client, state):
        listener = MagicMock()
        listener.snapshot.return_value = listener_snapshot(state, retry_count=3, last_error="link detached")
        app.state.listener = listener

        body = client.get("/api/v1/health").json()
        assert body["status"] == "degraded"
        assert body["ingestion"]["last_error"] == "link detached"
