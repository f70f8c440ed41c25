"""Snapshot contract for saving and restoring a :class:`World`.

The storage medium is up to the caller; these helpers only convert to and
from plain JSON-compatible dicts. Restoring never fails on a bad field: each
missing or malformed value falls back to the freshly constructed default,
and a snapshot that cannot be read at all yields a brand-new world.
"""
from __future__ import annotations

import logging
import math
import random
from typing import Any, Callable, Dict, Optional

from .calls import Call, CallStatus, Direction
from .clock import SimClock
from .config import LiftConfig
from .elevator import Elevator, ElevatorState, clamp
from .events import EventKind, PERSISTENT_KINDS
from .npc import Npc, spawn_npcs
from .world import World

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
PERSISTED_LOG_LINES = 200


def serialize_elevator(elevator: Elevator) -> dict:
    return {
        "position": elevator.position,
        "velocity": elevator.velocity,
        "acceleration": elevator.acceleration,
        "target_floor": elevator.target_floor,
        "queue": list(elevator.queue),
        "state": elevator.state.value,
        "doors_open": elevator.doors_open,
        "door_progress": elevator.door_progress,
        "door_held": elevator.door_held,
        "load_kg": elevator.load_kg,
        "occupant_present": elevator.occupant_present,
        "components": dict(elevator.components),
        "arrival_floor": elevator.arrival_floor,
        "opened_at_ms": elevator.opened_at_ms,
        "auto_close_at_ms": elevator.auto_close_at_ms,
        "last_door_action_ms": elevator.last_door_action_ms,
    }


def serialize_world(world: World) -> dict:
    return {
        "version": SNAPSHOT_VERSION,
        "saved_at_ms": world.now_ms,
        "elevator": serialize_elevator(world.elevator),
        "passenger": {
            "floor": world.passenger_floor,
            "destination": world.passenger_destination,
        },
        "calls": [call.to_dict() for call in world.calls],
        "next_call_id": world._next_call_id,
        "scheduled": [event.to_dict() for event in world.events.persistent_events()],
        "npcs": [npc.to_dict() for npc in world.npcs],
        "event_window": world.event_window.to_dict(),
        "logs": list(world.logs)[:PERSISTED_LOG_LINES],
    }


# -- tolerant field readers ---------------------------------------------------


def _number(data: Any, key: str, default: Optional[float]) -> Optional[float]:
    if not isinstance(data, dict):
        return default
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value):
        return default
    return float(value)


def _optional_floor(data: Any, key: str, floors: int) -> Optional[int]:
    value = _number(data, key, None)
    if value is None:
        return None
    return int(clamp(int(value), 0, floors - 1))


def _flag(data: Any, key: str, default: bool = False) -> bool:
    if not isinstance(data, dict):
        return default
    value = data.get(key, default)
    return value if isinstance(value, bool) else default


def _enum(data: Any, key: str, enum_cls, default):
    if not isinstance(data, dict):
        return default
    try:
        return enum_cls(data.get(key))
    except ValueError:
        return default


def _items(data: Any, key: str) -> list:
    if not isinstance(data, dict):
        return []
    value = data.get(key)
    return value if isinstance(value, list) else []


def _each(items: list, build: Callable[[Any], Any], label: str) -> list:
    out = []
    for item in items:
        try:
            built = build(item)
        except (TypeError, ValueError, KeyError, AttributeError, OverflowError) as exc:
            logger.warning("skipping malformed %s entry %r: %s", label, item, exc)
            continue
        if built is not None:
            out.append(built)
    return out


# -- restoring ------------------------------------------------------------------


def restore_elevator(elevator: Elevator, data: Any) -> Elevator:
    floors = elevator.floors
    top = elevator.floor_to_meters(floors - 1)
    elevator.position = clamp(_number(data, "position", elevator.position), 0.0, top)
    max_speed = elevator.config.max_speed_mps
    elevator.velocity = clamp(_number(data, "velocity", 0.0), -max_speed, max_speed)
    elevator.acceleration = _number(data, "acceleration", 0.0)
    elevator.target_floor = _optional_floor(data, "target_floor", floors)
    queue = []
    for item in _items(data, "queue"):
        if isinstance(item, bool) or not isinstance(item, (int, float)) or not math.isfinite(item):
            continue
        floor = elevator.clamp_floor(item)
        if floor != elevator.target_floor and floor not in queue:
            queue.append(floor)
    elevator.queue = queue
    elevator.state = _enum(data, "state", ElevatorState, ElevatorState.IDLE)
    elevator.doors_open = _flag(data, "doors_open")
    elevator.door_progress = clamp(_number(data, "door_progress", 0.0), 0.0, 1.0)
    elevator.door_held = _flag(data, "door_held")
    elevator.load_kg = max(0.0, _number(data, "load_kg", 0.0))
    elevator.occupant_present = _flag(data, "occupant_present")
    components = data.get("components") if isinstance(data, dict) else None
    for name in list(elevator.components):
        health = _number(components, name, elevator.components[name])
        elevator.components[name] = clamp(health, 0.0, 100.0)
    elevator.arrival_floor = _optional_floor(data, "arrival_floor", floors)
    elevator.opened_at_ms = _number(data, "opened_at_ms", None)
    elevator.auto_close_at_ms = _number(data, "auto_close_at_ms", None)
    elevator.last_door_action_ms = _number(data, "last_door_action_ms", None)
    # The auto board/exit continuation this flag guards is not persisted.
    elevator.cycle_handled = False
    return elevator


def _restore_call(item: Any, floors: int) -> Call:
    call_id = _number(item, "call_id", None)
    floor = _optional_floor(item, "floor", floors)
    if call_id is None or floor is None:
        raise ValueError("call needs a finite call_id and floor")
    return Call(
        call_id=int(call_id),
        floor=floor,
        direction=Direction(item["direction"]),
        requester=str(item.get("requester", "NPC")),
        created_ms=_number(item, "created_ms", 0.0),
        status=CallStatus(item.get("status", CallStatus.PENDING.value)),
        assigned_ms=_number(item, "assigned_ms", None),
        served_ms=_number(item, "served_ms", None),
    )


def _restore_npc(item: Any, now_ms: float, rng: random.Random) -> Npc:
    return Npc(
        npc_id=str(item["npc_id"]),
        next_action_ms=_number(item, "next_action_ms", None) or now_ms + rng.uniform(10_000, 60_000),
        busy_until_ms=_number(item, "busy_until_ms", 0.0),
    )


def deserialize_world(
    data: Any,
    config: Optional[LiftConfig] = None,
    clock: Optional[SimClock] = None,
    random_seed: Optional[int] = None,
) -> World:
    """Rebuild a live world from :func:`serialize_world` output.

    The clock resumes from the saved timestamp unless one is supplied.
    """

    if not isinstance(data, dict):
        return World(config=config, clock=clock, random_seed=random_seed)
    try:
        return _deserialize(data, config, clock, random_seed)
    except (TypeError, ValueError, KeyError, AttributeError, OverflowError) as exc:
        logger.warning("snapshot unreadable, starting a fresh world: %s", exc)
        return World(config=config, clock=clock, random_seed=random_seed)


def _deserialize(
    data: Dict[str, Any],
    config: Optional[LiftConfig],
    clock: Optional[SimClock],
    random_seed: Optional[int],
) -> World:
    if clock is None:
        clock = SimClock(_number(data, "saved_at_ms", 0.0))
    world = World(config=config, clock=clock, random_seed=random_seed, spawn_traffic=False)
    floors = world.config.floors
    now = world.now_ms

    restore_elevator(world.elevator, data.get("elevator"))

    passenger = data.get("passenger")
    floor = _optional_floor(passenger, "floor", floors)
    world.passenger_floor = world.config.initial_floor if floor is None else floor
    world.passenger_destination = _optional_floor(passenger, "destination", floors)

    world.calls = _each(_items(data, "calls"), lambda item: _restore_call(item, floors), "call")
    highest = max((call.call_id for call in world.calls), default=0)
    world._next_call_id = max(int(_number(data, "next_call_id", 1)), highest + 1)

    for item in _items(data, "scheduled"):
        kind = _enum(item, "kind", EventKind, None)
        fire_at = _number(item, "fire_at_ms", None)
        if kind not in PERSISTENT_KINDS or fire_at is None:
            logger.warning("skipping malformed scheduled entry %r", item)
            continue
        payload = item.get("payload")
        world.events.schedule_at(kind, fire_at, payload if isinstance(payload, str) else None)

    npcs = data.get("npcs")
    if isinstance(npcs, list):
        world.npcs = _each(npcs, lambda item: _restore_npc(item, now, world.random), "npc")
    else:
        world.npcs = spawn_npcs(world.config.npc_count, now, world.random)

    window = data.get("event_window")
    world.event_window.start_ms = _number(window, "start_ms", now)
    world.event_window.count = int(_number(window, "count", 0))

    for line in reversed(_items(data, "logs")):
        if isinstance(line, str):
            world.logs.appendleft(line)
    return world
