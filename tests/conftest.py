from __future__ import annotations

from typing import Callable

import pytest

from liftsim import Elevator, LiftConfig, SimClock, World

TICK = 1.0 / 60.0


def quiet_config(preset: str = "auto", **overrides) -> LiftConfig:
    """Config with every random source switched off."""
    base = {
        "floors": 10,
        "npc_traffic_factor": 0.0,
        "npc_board_rate_per_sec": 0.0,
        "npc_exit_rate_per_sec": 0.0,
        "random_event_rate_per_sec": 0.0,
    }
    base.update(overrides)
    return LiftConfig.preset(preset).with_overrides(**base)


def run_elevator(elevator: Elevator, clock: SimClock, seconds: float, dt: float = TICK) -> None:
    for _ in range(int(round(seconds / dt))):
        clock.advance(dt)
        elevator.step(dt)


def run_until(world: World, predicate: Callable[[], bool], max_s: float = 60.0, dt: float = TICK) -> bool:
    elapsed = 0.0
    while elapsed < max_s:
        if predicate():
            return True
        world.step(dt)
        elapsed += dt
    return predicate()


@pytest.fixture
def clock() -> SimClock:
    return SimClock()


@pytest.fixture
def elevator(clock: SimClock) -> Elevator:
    return Elevator(config=quiet_config(), clock=clock)


@pytest.fixture
def world() -> World:
    return World(config=quiet_config(), random_seed=1)


@pytest.fixture
def manual_world() -> World:
    return World(config=quiet_config("manual"), random_seed=1)
