import asyncio

import pytest
from fastapi.testclient import TestClient

from focus_tracker.webapp import create_app


@pytest.fixture
def client(tracker):
    with TestClient(create_app(tracker=tracker)) as client:
        yield client


def test_status_reports_configuration(client):
    payload = client.get("/api/status").json()
    assert payload["running"] is False
    assert payload["syncing"] is False
    assert payload["sampler"] == "scripted"
    assert payload["sample_ms"] == 200
    assert payload["debounce_ms"] == 2000
    assert payload["flush_seconds"] == 30


def test_current_entries_and_stats(client, tracker, sampler, clock):
    assert client.get("/api/current").json() is None

    tracker.tick()
    clock.advance(4_000)
    tracker.tick()
    sampler.show("Browser", "firefox")
    tracker.tick()

    current = client.get("/api/current").json()
    assert current["appTitle"] == "Browser"
    assert current["startTime"] == "2024-03-01 09:00:04 UTC"

    entries = client.get("/api/entries").json()
    assert [entry["appTitle"] for entry in entries] == ["Editor"]
    assert entries[0]["durationSeconds"] == 4

    assert client.get("/api/stats").json() == {
        "totalEntries": 1,
        "totalDurationSeconds": 4,
        "perAppDurationSeconds": {"code": 4},
    }


def test_save_sync_and_clear(client, tracker, sampler, clock, transport):
    tracker.tick()
    clock.advance(4_000)
    tracker.tick()
    sampler.show("Browser", "firefox")
    tracker.tick()

    saved = client.post("/api/save").json()
    assert saved["outcome"] == "stored"
    assert saved["persisted"] == 1
    stored = client.get("/api/stored").json()
    assert [entry["appTitle"] for entry in stored["entries"]] == ["Editor"]
    assert stored["lastSaved"]

    synced = client.post("/api/sync").json()
    assert synced == {
        "success": True,
        "outcome": "uploaded",
        "persisted": 0,
        "uploaded": 1,
        "error": None,
    }

    assert client.post("/api/clear").json() == {"success": True}
    assert client.get("/api/current").json() is None


def test_start_validation(client):
    response = client.post("/api/start", json={"period_ms": 5000})
    assert response.status_code == 400
    response = client.post("/api/start", json={"period_ms": 100, "verbose": True})
    assert response.status_code == 422


def test_start_and_stop(client, tracker):
    response = client.post("/api/start", json={"period_ms": 50})
    assert response.json() == {"success": True, "running": True}
    stopped = client.post("/api/stop").json()
    assert stopped["success"] is True
    assert stopped["flush"]["outcome"] in {"stored", "uploaded"}
    assert tracker.running is False


def test_shutdown_stops_tracker_off_the_event_loop(tracker, monkeypatch):
    loops_seen = []
    original_stop = tracker.stop

    def recording_stop():
        try:
            loops_seen.append(asyncio.get_running_loop())
        except RuntimeError:
            loops_seen.append(None)
        return original_stop()

    monkeypatch.setattr(tracker, "stop", recording_stop)
    with TestClient(create_app(tracker=tracker, autostart=True)):
        assert tracker.running

    assert not tracker.running
    assert loops_seen and loops_seen[0] is None
