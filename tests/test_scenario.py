from __future__ import annotations

import json
from pathlib import Path

import pytest
import run_scenario

SCENARIOS = Path(__file__).resolve().parent.parent / "scripts" / "scenarios"


def test_passenger_trip(tmp_path):
    config = json.loads((SCENARIOS / "passenger_trip.json").read_text())
    world = run_scenario.build_world(config)

    samples = run_scenario.run_world(world, config)

    assert len(samples) >= config["duration"]
    assert world.passenger_floor == 7
    assert not world.elevator.occupant_present
    assert any("You boarded at floor 0" in line for line in world.logs)

    snapshot_path = tmp_path / "world.json"
    run_scenario.save_json(snapshot_path, run_scenario.serialize_world(world))
    resumed = run_scenario.build_world(config, snapshot_path, elapsed_s=60)
    assert resumed.passenger_floor == 7
    assert resumed.now_ms == pytest.approx(world.now_ms + 60_000)


def test_unknown_action_is_logged(tmp_path):
    config = {"duration": 1, "actions": [{"time": 0, "type": "teleport"}]}
    world = run_scenario.build_world(config)
    run_scenario.run_world(world, config)
    assert any("Unknown scenario action 'teleport'" in line for line in world.logs)
