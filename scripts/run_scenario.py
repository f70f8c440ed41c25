"""CLI for running headless OnlyLift scenarios defined in JSON configs."""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from liftsim import LiftConfig, World, deserialize_world, fast_forward, serialize_world

ACTIONS = {
    "call": lambda world, action: world.submit_call(
        action["floor"], action.get("direction", "up"), action.get("requester", "Passenger")
    ),
    "destination": lambda world, action: world.request_destination(action["floor"]),
    "open": lambda world, action: world.open_doors(),
    "close": lambda world, action: world.close_doors(),
    "enter": lambda world, action: world.enter_passenger(),
    "exit": lambda world, action: world.exit_passenger(),
    "alarm": lambda world, action: world.trigger_alarm(),
    "emergency": lambda world, action: world.emergency_stop(),
    "acknowledge": lambda world, action: world.acknowledge_emergency(),
}


def build_world(config: Dict, snapshot_path: Optional[Path] = None, elapsed_s: float = 0.0) -> World:
    lift_config = LiftConfig.from_dict(config.get("config", {}))
    random_seed = config.get("random_seed")
    if snapshot_path and snapshot_path.exists():
        try:
            data = json.loads(snapshot_path.read_text())
        except ValueError:
            data = None
        world = deserialize_world(data, config=lift_config, random_seed=random_seed)
        fast_forward(world, elapsed_s)
        return world
    world = World(config=lift_config, random_seed=random_seed)
    world.log("World initialized.")
    return world


def _apply_actions(world: World, pending: List[Dict], start_ms: float) -> List[Dict]:
    remaining: List[Dict] = []
    for action in pending:
        if world.now_ms - start_ms < action.get("time", 0) * 1000.0:
            remaining.append(action)
            continue
        handler = ACTIONS.get(action.get("type"))
        if handler is None:
            world.log(f"Unknown scenario action {action.get('type')!r}")
            continue
        result = handler(world, action)
        world.log(f"Scenario action {action['type']}: {'ok' if result else 'refused'}")
    return remaining


def run_world(world: World, config: Dict) -> List[Dict]:
    duration = config.get("duration", 120)
    dt = config.get("dt", 1.0 / 60.0)
    sample_every = config.get("sample_every_s", 1.0)
    pending = sorted(config.get("actions", []), key=lambda action: action.get("time", 0))
    samples: List[Dict] = []
    start_ms = world.now_ms
    next_sample = 0.0
    elapsed = 0.0
    while elapsed < duration:
        pending = _apply_actions(world, pending, start_ms)
        world.step(dt)
        elapsed += dt
        if elapsed >= next_sample:
            status = world.status()
            samples.append(
                {
                    "t": round(elapsed, 3),
                    "floor": status["floor"],
                    "state": status["state"],
                    "velocity": status["velocity"],
                    "door_progress": status["door_progress"],
                    "load_kg": status["load_kg"],
                }
            )
            next_sample += sample_every
    return samples


def save_json(output_path: Optional[Path], data: Dict) -> None:
    if not output_path:
        return
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(data, indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("config", type=Path, help="Path to a JSON scenario configuration file")
    parser.add_argument("--output", type=Path, help="Optional file path to write samples as JSON")
    parser.add_argument("--snapshot", type=Path, help="Snapshot file to resume from and save to")
    parser.add_argument(
        "--elapsed",
        type=float,
        default=0.0,
        help="Seconds that passed since the snapshot was written (fast-forwarded)",
    )
    parser.add_argument("--verbose", action="store_true", help="Log world events to stderr")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    config = json.loads(args.config.read_text())
    world = build_world(config, args.snapshot, args.elapsed)
    samples = run_world(world, config)

    final = world.status()
    results = {
        "scenario": config.get("name", args.config.stem),
        "description": config.get("description"),
        "duration": config.get("duration", 120),
        "final_state": final,
        "samples": samples,
    }
    save_json(args.output, results)
    save_json(args.snapshot, serialize_world(world))

    print(f"Scenario: {results['scenario']}")
    if results["description"]:
        print(results["description"])
    print(f"Duration: {results['duration']} s ({world.ticks} ticks)")
    print(f"Floor: {final['floor']}  State: {final['state']}  Load: {round(final['load_kg'])} kg")
    print(f"Doors: {'open' if final['doors_open'] else 'closed'}  Occupant: {final['occupant_present']}")
    served = sum(1 for call in final["calls"] if call["status"] == "served")
    print(f"Calls: {len(final['calls'])} total, {served} served")
    print("Recent log:")
    for line in list(world.logs)[:10]:
        print(f"  {line}")
    if args.output:
        print(f"Saved samples to {args.output}")


if __name__ == "__main__":
    main()
