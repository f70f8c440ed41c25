from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import quiet_config
from liftapi import app as app_module


@pytest.fixture
def manager(monkeypatch):
    manager = app_module.SimulationManager(config=quiet_config(), random_seed=1)
    monkeypatch.setattr(app_module, "manager", manager)
    return manager


@pytest.fixture
def client(manager):
    # No context manager: startup hooks (and the background loop) stay off.
    return TestClient(app_module.app)


def test_state(client):
    response = client.get("/state")
    assert response.status_code == 200
    body = response.json()
    assert body["ticks"] == 0
    assert body["world"]["floor"] == 0
    assert body["world"]["doors_open"] is False


def test_submit_call(client, manager):
    response = client.post("/calls", json={"floor": 3, "direction": "up"})
    body = response.json()
    assert body["ok"] is True
    assert body["call"]["floor"] == 3
    assert body["events"][0]["event"] == "call"
    assert len(manager.world.calls) == 1

    repeat = client.post("/calls", json={"floor": 3, "direction": "up"}).json()
    assert repeat["ok"] is False
    assert repeat["call"] is None


def test_submit_call_validates_direction(client):
    response = client.post("/calls", json={"floor": 3, "direction": "sideways"})
    assert response.status_code == 422


def test_destination_needs_occupant(client):
    body = client.post("/cabin/destination", json={"floor": 4}).json()
    assert body["ok"] is False
    assert body["world"]["target_floor"] is None


def test_door_and_passenger_commands(monkeypatch):
    manager = app_module.SimulationManager(config=quiet_config("manual"), random_seed=1)
    monkeypatch.setattr(app_module, "manager", manager)
    client = TestClient(app_module.app)

    assert client.post("/doors/open").json()["ok"] is True
    manager.world.run(1.0)
    body = client.post("/passenger/enter").json()
    assert body["ok"] is True
    assert body["world"]["occupant_present"] is True
    assert client.post("/passenger/exit").json()["ok"] is False


def test_alarm(client):
    body = client.post("/alarm").json()
    assert body["ok"] is True
    assert {"event": "alarm", "requester": "Passenger"} in body["events"]


def test_emergency_cycle(client):
    body = client.post("/emergency").json()
    assert body["ok"] is True
    assert body["world"]["state"] == "EMERGENCY"

    assert client.post("/emergency/acknowledge").json()["ok"] is True
    assert client.post("/emergency/acknowledge").json()["ok"] is False


def test_snapshot_roundtrip(client, manager):
    client.post("/calls", json={"floor": 5, "direction": "down"})
    snapshot = client.get("/snapshot").json()
    assert snapshot["version"] == 1
    assert snapshot["calls"][0]["floor"] == 5

    body = client.post("/snapshot", json={"world": snapshot, "elapsed_s": 30}).json()
    assert body["fast_forwarded_s"] == 30
    assert manager.world.now_ms == 30_000
    assert manager.world.calls[0].status == "served"


def test_snapshot_restore_rejects_negative_elapsed(client):
    response = client.post("/snapshot", json={"world": {}, "elapsed_s": -1})
    assert response.status_code == 422


def test_stream_sends_initial_state(client):
    with client.websocket_connect("/ws/stream") as websocket:
        body = websocket.receive_json()
    assert body["world"]["floor"] == 0


def test_dispatch_policy_switch(client, manager):
    body = client.post("/dispatch", json={"name": "fcfs"}).json()
    assert "Dispatch policy set to fcfs" in body["log"][0]
    assert type(manager.world.dispatcher).__name__ == "FirstComeFirstServedScheduler"

    response = client.post("/dispatch", json={"name": "scan"})
    assert response.status_code == 400
    assert "Unknown scheduler" in response.json()["detail"]


def test_lifespan_runs_background_loop(manager):
    with TestClient(app_module.app) as client:
        assert manager._task is not None
        assert client.get("/state").status_code == 200
    assert manager._task is None
