"""Tests for API endpoints."""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from starlette.testclient import WebSocketTestSession

from conftest import FakeProvider
from git_status_store.config import Config
from git_status_store.factory import create_app

CHANGES = [{"path": "a.py", "status": "modified", "additions": 3, "deletions": 1}]


@pytest.fixture
def fake_provider() -> FakeProvider:
    """Provider shared by the app under test."""
    return FakeProvider({"success": True, "changes": CHANGES})


@pytest.fixture
def test_client(
    fake_provider: FakeProvider, monkeypatch: pytest.MonkeyPatch
) -> Iterator[TestClient]:
    """Create test client with mocked config and provider."""
    test_config = Config(host="127.0.0.1", port=8000, hide_when_no_clients=True)

    # Override factory config and the git provider
    monkeypatch.setattr("git_status_store.factory._config", test_config)
    monkeypatch.setattr(
        "git_status_store.factory.GitCliStatusProvider",
        lambda *args, **kwargs: fake_provider,
    )

    with TestClient(create_app()) as client:
        yield client


def _receive_until_loaded(ws: WebSocketTestSession) -> list[dict[str, Any]]:
    """Collect status messages until a completed fetch arrives."""
    messages: list[dict[str, Any]] = []
    for _ in range(10):
        message = ws.receive_json()
        messages.append(message)
        if message["type"] == "status" and message["snapshot"]["last_updated"] is not None:
            break
    return messages


def test_health(test_client: TestClient) -> None:
    """Test GET /health."""
    response = test_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_status_of_unknown_path_is_empty(
    test_client: TestClient, fake_provider: FakeProvider
) -> None:
    """Test GET /api/status never fetches and returns an empty snapshot."""
    response = test_client.get("/api/status", params={"path": "/repo"})

    assert response.status_code == 200
    body = response.json()
    assert body["workspace_path"] == "/repo"
    assert body["changes"] == []
    assert body["is_loading"] is False
    assert body["last_updated"] is None
    assert fake_provider.calls == []


def test_status_requires_path(test_client: TestClient) -> None:
    """Test an empty path is rejected."""
    response = test_client.get("/api/status", params={"path": ""})

    assert response.status_code == 422


def test_refresh_returns_fetched_snapshot(
    test_client: TestClient, fake_provider: FakeProvider
) -> None:
    """Test POST /api/status/refresh awaits one fetch."""
    response = test_client.post("/api/status/refresh", params={"path": "/repo"})

    assert response.status_code == 200
    body = response.json()
    assert [c["path"] for c in body["changes"]] == ["a.py"]
    assert body["total_additions"] == 3
    assert body["total_deletions"] == 1
    assert fake_provider.calls == ["/repo"]

    stats = test_client.get("/api/stats").json()
    assert stats["entries"] == 0


def test_invalidate_is_accepted(test_client: TestClient) -> None:
    """Test POST /api/status/invalidate."""
    response = test_client.post("/api/status/invalidate", params={"path": "/repo"})

    assert response.status_code == 202
    assert response.json() == {"status": "accepted", "path": "/repo"}


def test_visibility_roundtrip(test_client: TestClient) -> None:
    """Test visibility starts hidden without clients and can be set."""
    assert test_client.get("/api/visibility").json() == {"visible": False}

    response = test_client.put("/api/visibility", json={"visible": True})

    assert response.status_code == 200
    assert response.json() == {"visible": True}
    assert test_client.get("/api/stats").json()["visible"] is True


def test_plan_lock_missing_workspace(test_client: TestClient, tmp_path: Path) -> None:
    """Test locking a nonexistent workspace returns 404."""
    response = test_client.post("/api/plan/lock", params={"path": str(tmp_path / "nope")})

    assert response.status_code == 404


def test_plan_lock_and_unlock(test_client: TestClient, tmp_path: Path) -> None:
    """Test lock then unlock of a real directory."""
    (tmp_path / "file.txt").write_text("x\n")

    locked = test_client.post("/api/plan/lock", params={"path": str(tmp_path)})
    unlocked = test_client.post("/api/plan/unlock", params={"path": str(tmp_path)})

    assert locked.status_code == 200
    assert locked.json()["success"] is True
    assert unlocked.json()["success"] is True
    assert unlocked.json()["changed"] == locked.json()["changed"]


def test_websocket_ping_pong(test_client: TestClient) -> None:
    """Test text ping is answered with pong."""
    with test_client.websocket_connect("/ws") as ws:
        ws.send_text("ping")
        assert ws.receive_text() == "pong"


def test_websocket_subscribe_streams_snapshots(
    test_client: TestClient, fake_provider: FakeProvider
) -> None:
    """Test subscribe delivers the placeholder, loading and final snapshots."""
    with test_client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "subscribe", "path": "/repo", "pollIntervalMs": 60000})
        messages = _receive_until_loaded(ws)

        assert all(m["type"] == "status" for m in messages)
        assert messages[0]["snapshot"]["changes"] == []
        assert any(m["snapshot"]["is_loading"] for m in messages)
        final = messages[-1]["snapshot"]
        assert final["is_loading"] is False
        assert [c["path"] for c in final["changes"]] == ["a.py"]

        stats = test_client.get("/api/stats").json()
        assert stats["visible"] is True
        assert stats["subscribers"] == 1
        assert stats["polling"] == 1

    assert fake_provider.calls == ["/repo"]


def test_websocket_invalid_message(test_client: TestClient) -> None:
    """Test malformed messages are answered with an error."""
    with test_client.websocket_connect("/ws") as ws:
        ws.send_text('{"type": "subscribe"}')
        message = ws.receive_json()

        assert message["type"] == "error"
        assert message["message"].startswith("Invalid message")


def test_websocket_not_subscribed(test_client: TestClient) -> None:
    """Test updating a path the client never subscribed to is an error."""
    with test_client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "set_active", "path": "/repo", "active": False})
        message = ws.receive_json()

        assert message == {"type": "error", "message": "Not subscribed: /repo"}


def test_websocket_refresh_without_subscription_replies(
    test_client: TestClient, fake_provider: FakeProvider
) -> None:
    """Test a one-off refresh sends the fetched snapshot back to the caller."""
    with test_client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "refresh", "path": "/repo"})
        message = ws.receive_json()

        assert message["type"] == "status"
        assert message["snapshot"]["last_updated"] is not None
        assert [c["path"] for c in message["snapshot"]["changes"]] == ["a.py"]

    assert fake_provider.calls == ["/repo"]
