from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from .clock import SimClock
from .config import AutoClosePolicy, CloseGuard, LiftConfig
from .observers import Observable

logger = logging.getLogger(__name__)

# Physics is integrated in slices no longer than this, so coarse
# fast-forward steps stay stable.
MAX_PHYSICS_STEP_S = 0.05

ARRIVAL_DISTANCE_M = 0.03
ARRIVAL_SPEED_MPS = 0.06
BRAKE_MARGIN_M = 0.03
REST_SPEED_MPS = 0.01
DOOR_HOLD_PROGRESS = 0.05
DOOR_CLOSED_PROGRESS = 0.02
DOOR_READY_PROGRESS = 0.9


class ElevatorState(str, Enum):
    IDLE = "IDLE"
    MOVING = "MOVING"
    ARRIVED = "ARRIVED"
    DOOR_OPEN = "DOOR_OPEN"
    DOOR = "DOOR"
    EMERGENCY = "EMERGENCY"


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _sign(value: float) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


@dataclass
class Elevator(Observable):
    """Single cabin with bounded-acceleration motion and a door interlock.

    Commands never raise on refusal; they return ``False`` and leave the
    state untouched. Emits ``door``, ``arrived`` and ``request`` events.
    """

    config: LiftConfig = field(default_factory=LiftConfig)
    clock: SimClock = field(default_factory=SimClock)
    position: Optional[float] = None
    velocity: float = 0.0
    acceleration: float = 0.0
    target_floor: Optional[int] = None
    queue: List[int] = field(default_factory=list)
    state: ElevatorState = ElevatorState.IDLE
    doors_open: bool = False
    door_progress: float = 0.0
    door_held: bool = False
    load_kg: float = 0.0
    occupant_present: bool = False
    components: Dict[str, float] = field(default_factory=lambda: {"door": 100.0, "motor": 100.0})
    arrival_floor: Optional[int] = None
    opened_at_ms: Optional[float] = None
    auto_close_at_ms: Optional[float] = None
    last_door_action_ms: Optional[float] = None
    cycle_handled: bool = False
    event_hooks: Dict[str, List[Callable[[dict], None]]] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.position is None:
            self.position = self.floor_to_meters(self.config.initial_floor)

    # -- geometry -----------------------------------------------------------

    @property
    def floors(self) -> int:
        return self.config.floors

    @property
    def floor_height(self) -> float:
        return self.config.floor_height_m

    @property
    def overload_limit_kg(self) -> float:
        return self.config.overload_limit_kg

    @property
    def door_cooldown_ms(self) -> float:
        return self.config.door_cooldown_ms

    def clamp_floor(self, floor: float) -> int:
        return int(clamp(math.floor(floor), 0, self.floors - 1))

    def floor_to_meters(self, floor: float) -> float:
        return clamp(floor, 0, self.floors - 1) * self.floor_height

    def meters_to_floor(self, meters: float) -> int:
        return int(math.floor(meters / self.floor_height + 0.5))

    @property
    def current_floor(self) -> int:
        return int(clamp(self.meters_to_floor(self.position), 0, self.floors - 1))

    @property
    def doors_ready(self) -> bool:
        return self.doors_open and self.door_progress >= DOOR_READY_PROGRESS

    def cooldown_elapsed(self) -> bool:
        if self.last_door_action_ms is None:
            return True
        return self.clock.now_ms() - self.last_door_action_ms >= self.door_cooldown_ms

    # -- requests -----------------------------------------------------------

    def request_floor(self, floor: float) -> bool:
        """Destination pressed on the in-cabin keypad."""
        return self._route(floor, "Passenger")

    def request_external(self, floor: float, requester: str = "NPC") -> bool:
        return self._route(floor, requester)

    def _route(self, floor: float, requester: str) -> bool:
        floor = self.clamp_floor(floor)
        if self.doors_open and floor == self.current_floor and self.velocity == 0:
            # Already standing open at the requested floor.
            self._emit("request", {"floor": floor, "requester": requester})
            return True
        if floor == self.target_floor or floor in self.queue:
            logger.debug("duplicate request for floor %d ignored", floor)
            return False
        if self.target_floor is None and not self.queue and not self.doors_open:
            self.target_floor = floor
        else:
            self.queue.append(floor)
        self._emit("request", {"floor": floor, "requester": requester})
        return True

    def pop_next_target(self) -> None:
        if self.target_floor is not None or not self.queue:
            return
        current = self.current_floor
        best_index = 0
        best_distance = math.inf
        for index, floor in enumerate(self.queue):
            distance = abs(floor - current)
            if distance < best_distance:
                best_distance = distance
                best_index = index
        self.target_floor = self.queue.pop(best_index)

    # -- doors --------------------------------------------------------------

    def door_health_ok(self) -> bool:
        return self.components.get("door", 0.0) >= self.config.min_door_health

    def open_doors(self) -> bool:
        if not self.door_health_ok() or self.door_held:
            return False
        was_open = self.doors_open
        now = self.clock.now_ms()
        self.doors_open = True
        if self.state != ElevatorState.EMERGENCY:
            self.state = ElevatorState.DOOR_OPEN
        self.opened_at_ms = now
        self.cycle_handled = False
        if self.config.auto_close == AutoClosePolicy.DISABLED:
            self.auto_close_at_ms = None
        else:
            self.auto_close_at_ms = now + self.config.auto_close_ms
        if not was_open:
            self._emit("door", {"state": "open", "floor": self.current_floor})
        return True

    def close_doors(self) -> bool:
        if self.door_held:
            return False
        guard = self.config.close_guard
        if guard == CloseGuard.DOOR_HEALTH and not self.door_health_ok():
            return False
        if (
            guard == CloseGuard.OCCUPANT_OVERLOAD
            and self.occupant_present
            and self.load_kg > self.overload_limit_kg
        ):
            return False
        was_open = self.doors_open
        self.doors_open = False
        self.auto_close_at_ms = None
        if self.state != ElevatorState.EMERGENCY:
            self.state = ElevatorState.DOOR if self.door_progress > 0 else ElevatorState.IDLE
        if was_open:
            self._emit("door", {"state": "closed", "floor": self.current_floor})
        return True

    def force_doors(self, open_: bool) -> None:
        """Jam the doors fully open or fully closed, bypassing the guards."""
        self.door_held = True
        self.auto_close_at_ms = None
        was_open = self.doors_open
        if open_:
            self.doors_open = True
            self.door_progress = 1.0
            self.velocity = 0.0
            self.acceleration = 0.0
            if self.state != ElevatorState.EMERGENCY:
                self.state = ElevatorState.DOOR_OPEN
        else:
            self.doors_open = False
            self.door_progress = 0.0
        if was_open != self.doors_open:
            state = "open" if self.doors_open else "closed"
            self._emit("door", {"state": state, "floor": self.current_floor})

    def release_doors(self) -> None:
        """Lift a jam hold; doors left open get a fresh auto-close deadline."""
        if self.door_held and self.doors_open and self.config.auto_close != AutoClosePolicy.DISABLED:
            self.auto_close_at_ms = self.clock.now_ms() + self.config.auto_close_ms
        self.door_held = False

    # -- occupancy ----------------------------------------------------------

    def enter_passenger(self, weight: float) -> bool:
        if not self.doors_ready or self.occupant_present:
            return False
        if not self.cooldown_elapsed():
            return False
        if self.load_kg + weight > self.overload_limit_kg:
            return False
        self.load_kg += weight
        self.occupant_present = True
        self.last_door_action_ms = self.clock.now_ms()
        return True

    def exit_passenger(self, weight: float) -> bool:
        if not self.doors_ready or not self.occupant_present:
            return False
        if not self.cooldown_elapsed():
            return False
        self.load_kg = max(0.0, self.load_kg - weight)
        self.occupant_present = False
        self.last_door_action_ms = self.clock.now_ms()
        return True

    # -- emergency ----------------------------------------------------------

    def enter_emergency(self) -> None:
        self.state = ElevatorState.EMERGENCY
        self.velocity = 0.0
        self.acceleration = 0.0

    def clear_emergency(self) -> bool:
        if self.state != ElevatorState.EMERGENCY:
            return False
        self.state = ElevatorState.DOOR_OPEN if self.doors_open else ElevatorState.IDLE
        return True

    # -- simulation ---------------------------------------------------------

    def step(self, dt: float) -> None:
        if dt <= 0:
            return
        slices = max(1, int(math.ceil(dt / MAX_PHYSICS_STEP_S)))
        sub_dt = dt / slices
        for _ in range(slices):
            self._advance(sub_dt)

    def _advance(self, dt: float) -> None:
        self._advance_doors(dt)

        if self.state == ElevatorState.EMERGENCY:
            self.velocity = 0.0
            self.acceleration = 0.0
            return

        if self.doors_open or self.door_progress > 0:
            self.velocity = 0.0
            self.acceleration = 0.0
            if self.doors_open and self.door_progress > DOOR_HOLD_PROGRESS:
                self.state = ElevatorState.DOOR_OPEN
                self._maybe_auto_close()
            else:
                self.state = ElevatorState.DOOR
            return

        if self.target_floor is None and self.queue:
            self.pop_next_target()

        if self.target_floor is None:
            self._apply_idle_damping(dt)
            return

        self._drive_towards_target(dt)

    def _advance_doors(self, dt: float) -> None:
        health = self.components.get("door", 0.0)
        rate = (1.0 / self.config.door_speed) * (0.5 + (health / 100.0) * 0.8)
        if self.doors_open:
            self.door_progress = clamp(self.door_progress + rate * dt, 0.0, 1.0)
        else:
            self.door_progress = clamp(self.door_progress - rate * dt, 0.0, 1.0)
            if self.door_progress <= DOOR_CLOSED_PROGRESS:
                self.cycle_handled = False

    def _maybe_auto_close(self) -> None:
        if self.auto_close_at_ms is None or self.door_held:
            return
        if self.clock.now_ms() < self.auto_close_at_ms:
            return
        policy = self.config.auto_close
        if policy == AutoClosePolicy.UNCONDITIONAL or (
            policy == AutoClosePolicy.WHEN_VACANT and not self.occupant_present
        ):
            self.close_doors()

    def _apply_idle_damping(self, dt: float) -> None:
        self.acceleration = -self.velocity * self.config.idle_damping
        self.velocity += self.acceleration * dt
        self.position += self.velocity * dt
        if abs(self.velocity) < REST_SPEED_MPS:
            self.velocity = 0.0
            self.acceleration = 0.0
            self.state = ElevatorState.IDLE

    def braking_distance(self) -> float:
        return (self.velocity * self.velocity) / (2 * self.config.brake_mps2)

    def _drive_towards_target(self, dt: float) -> None:
        cfg = self.config
        target_pos = self.floor_to_meters(self.target_floor)
        distance = target_pos - self.position
        direction = _sign(distance) or 1
        abs_distance = abs(distance)

        if abs_distance <= self.braking_distance() + BRAKE_MARGIN_M:
            self.acceleration = -cfg.brake_mps2 * (_sign(self.velocity) or direction)
        else:
            error = cfg.max_speed_mps * direction - self.velocity
            self.acceleration = clamp(error * cfg.speed_gain, -cfg.brake_mps2, cfg.accel_mps2)

        self.velocity += self.acceleration * dt
        self.velocity = clamp(self.velocity, -cfg.max_speed_mps, cfg.max_speed_mps)
        self.position += self.velocity * dt
        self.state = ElevatorState.MOVING

        if abs_distance < ARRIVAL_DISTANCE_M and abs(self.velocity) < ARRIVAL_SPEED_MPS:
            self._arrive(target_pos)

    def _arrive(self, target_pos: float) -> None:
        self.position = target_pos
        self.velocity = 0.0
        self.acceleration = 0.0
        self.arrival_floor = self.target_floor
        self.target_floor = None
        self.state = ElevatorState.ARRIVED
        logger.info("arrived at floor %d", self.arrival_floor)
        self.open_doors()
        self._emit("arrived", {"floor": self.arrival_floor})
