from __future__ import annotations

import logging
import random
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple, Union

from dispatch import Scheduler, get_scheduler

from .calls import PASSENGER, Call, CallStatus, Direction
from .clock import SimClock
from .config import BoardingMode, LiftConfig
from .elevator import Elevator, ElevatorState, clamp
from .events import EventKind, EventScheduler, EventWindow, ScheduledEvent
from .npc import Npc, spawn_npcs
from .observers import Observable

logger = logging.getLogger(__name__)

BOARDING_PROGRESS = 0.9
AUTO_TRANSFER_PROGRESS = 0.98


def format_sim_time(now_ms: float) -> str:
    total = int(now_ms // 1000)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class World(Observable):
    """Owns the cabin, hall calls, NPC traffic and scheduled events.

    One call to :meth:`step` is one tick. Within a tick the order is fixed:
    NPC timers, due scheduled events, the random-event roll, cabin physics,
    boarding/exit gating and finally call dispatch.
    """

    def __init__(
        self,
        config: Optional[LiftConfig] = None,
        clock: Optional[SimClock] = None,
        random_seed: Optional[int] = None,
        rng: Optional[random.Random] = None,
        spawn_traffic: bool = True,
    ) -> None:
        super().__init__()
        self.config = config or LiftConfig()
        self.config.validate()
        self.clock = clock or SimClock()
        self.random = rng or random.Random(random_seed)
        self.elevator = Elevator(config=self.config, clock=self.clock)
        self.dispatcher: Scheduler = get_scheduler(self.config.scheduler_name)
        self.events = EventScheduler(self.clock)
        self.event_window = EventWindow(
            start_ms=self.clock.now_ms(), cap=self.config.event_cap_per_minute
        )
        self.passenger_floor: int = self.config.initial_floor
        self.passenger_destination: Optional[int] = None
        self.calls: List[Call] = []
        self.npcs: List[Npc] = (
            spawn_npcs(self.config.npc_count, self.clock.now_ms(), self.random) if spawn_traffic else []
        )
        self.logs: Deque[str] = deque(maxlen=self.config.log_tail_size)
        self.ticks: int = 0
        self._next_call_id = 1
        self._passenger_call_times: Dict[Tuple[int, Direction], float] = {}
        for event in ("door", "arrived", "request"):
            self.elevator.on_event(event, self._forward(event))
        self.elevator.on_event("arrived", self._on_arrived)

    # -- driving ------------------------------------------------------------

    def run(self, duration_s: float, dt: float = 1.0 / 60.0) -> None:
        elapsed = 0.0
        while elapsed < duration_s:
            step = min(dt, duration_s - elapsed)
            self.step(step)
            elapsed += step

    def step(self, dt: float) -> None:
        if dt <= 0:
            return
        self.clock.advance(dt)
        self.step_npcs(dt)
        self.process_scheduled()
        if self.should_trigger_event(self.config.random_event_rate_per_sec, dt):
            if self.random.random() < self.config.door_jam_probability:
                self.schedule(EventKind.DOOR_JAM, self.random.uniform(*self.config.jam_delay_s))
        self.elevator.step(dt)
        self.step_boarding(dt)
        self.assign_calls()
        self.ticks += 1

    @property
    def now_ms(self) -> float:
        return self.clock.now_ms()

    # -- log tail -----------------------------------------------------------

    def log(self, message: str) -> None:
        self.logs.appendleft(f"[{format_sim_time(self.now_ms)}] {message}")
        logger.info(message)

    # -- calls --------------------------------------------------------------

    def submit_call(
        self, floor: int, direction: Union[Direction, str], requester: str = PASSENGER
    ) -> Optional[Call]:
        """Register a hall call; returns ``None`` when it is suppressed."""
        direction = Direction(direction)
        floor = self.elevator.clamp_floor(floor)
        now = self.now_ms
        key = (floor, direction)
        if requester == PASSENGER:
            last = self._passenger_call_times.get(key)
            if last is not None and now - last < self.config.call_debounce_ms:
                logger.debug("debounced passenger call %s at floor %d", direction.value, floor)
                return None
        if any(call.live and call.matches(floor, direction, requester) for call in self.calls):
            logger.debug("duplicate call %s at floor %d by %s", direction.value, floor, requester)
            return None
        if requester == PASSENGER:
            self._passenger_call_times[key] = now
        call = Call(
            call_id=self._next_call_id,
            floor=floor,
            direction=direction,
            requester=requester,
            created_ms=now,
        )
        self._next_call_id += 1
        self.calls.append(call)
        self._prune_calls()
        self.log(f"{requester} called {direction.value} at floor {floor}")
        self._emit(
            "call",
            {"call_id": call.call_id, "floor": floor, "direction": direction.value, "requester": requester},
        )
        return call

    def live_calls(self) -> List[Call]:
        return [call for call in self.calls if call.live]

    def get_call(self, call_id: int) -> Optional[Call]:
        for call in self.calls:
            if call.call_id == call_id:
                return call
        return None

    def assign_calls(self) -> Optional[Call]:
        elevator = self.elevator
        if elevator.target_floor is not None or elevator.state == ElevatorState.EMERGENCY:
            return None
        self._release_stale_assignments()
        call = self.dispatcher.select_call(elevator.current_floor, self.calls)
        if call is None:
            return None
        call.assign(self.now_ms)
        elevator.request_external(call.floor, call.requester)
        self.log(f"Assigned elevator to external call at {call.floor}")
        return call

    def _release_stale_assignments(self) -> None:
        # An arrival whose doors refused to open leaves its call assigned
        # with nothing routed to the floor; hand it back to dispatch.
        elevator = self.elevator
        if elevator.door_held or not elevator.door_health_ok():
            return
        for call in self.calls:
            if call.status != CallStatus.ASSIGNED:
                continue
            if call.floor in elevator.queue:
                continue
            if elevator.doors_open and call.floor == elevator.current_floor:
                continue
            call.release()
            logger.debug("call %d at floor %d returned to pending", call.call_id, call.floor)

    def mark_calls_served_at_floor(self, floor: int) -> int:
        served = 0
        for call in self.calls:
            if call.live and call.floor == floor:
                call.serve(self.now_ms)
                served += 1
                self._emit("served", {"call_id": call.call_id, "floor": floor})
        if served:
            self.log(f"Served {served} call(s) at floor {floor}")
        return served

    def _prune_calls(self) -> None:
        served = [call for call in self.calls if call.status == CallStatus.SERVED]
        excess = len(served) - self.config.call_history_size
        if excess <= 0:
            return
        stale = {id(call) for call in served[:excess]}
        self.calls = [call for call in self.calls if id(call) not in stale]

    # -- scheduled events ---------------------------------------------------

    def schedule(
        self,
        kind: EventKind,
        in_seconds: float,
        payload: Optional[str] = None,
        action=None,
    ) -> ScheduledEvent:
        event = self.events.schedule(kind, in_seconds, payload, action)
        if event.persistent:
            self.log(f"Scheduled {kind.value} in {round(in_seconds)}s")
        return event

    def process_scheduled(self) -> int:
        due = self.events.pop_due()
        for event in due:
            self.handle_event(event)
        return len(due)

    def handle_event(self, event: ScheduledEvent) -> None:
        if event.action is not None:
            event.action()
        elif event.kind == EventKind.DOOR_JAM:
            self.door_jam()
        elif event.kind == EventKind.AUTO_REPAIR:
            self.auto_repair(event.payload)
        else:
            logger.debug("dropping %s without continuation", event.kind.value)

    def should_trigger_event(self, rate_per_sec: float, dt: float) -> bool:
        return self.event_window.should_trigger(self.now_ms, rate_per_sec, dt, self.random)

    def door_jam(self, force_open: Optional[bool] = None) -> None:
        cfg = self.config
        elevator = self.elevator
        self.log("Door jam occurred.")
        damage = round(self.random.uniform(*cfg.jam_damage))
        elevator.components["door"] = max(0.0, elevator.components.get("door", 0.0) - damage)
        if force_open is None:
            force_open = self.random.random() < 0.5
        elevator.force_doors(force_open)
        self.log("Door jammed open." if force_open else "Door jammed closed.")
        self.schedule(EventKind.AUTO_REPAIR, self.random.uniform(*cfg.repair_delay_s), payload="door")

    def auto_repair(self, component: Optional[str]) -> None:
        components = self.elevator.components
        if component not in components:
            logger.info("auto repair for %s has nothing to restore", component)
            return
        amount = round(self.random.uniform(*self.config.repair_amount))
        components[component] = clamp(components[component] + amount, 0.0, 100.0)
        self.elevator.release_doors()
        self.log(f"Auto repair: {component} +{amount}%")

    # -- NPC traffic --------------------------------------------------------

    def step_npcs(self, dt: float) -> None:
        now = self.now_ms
        for npc in self.npcs:
            npc.tick(now, self.elevator.floors, self.random, self.submit_call)

    def _npc_load_churn(self, dt: float) -> None:
        elevator = self.elevator
        now = self.now_ms
        if self.random.random() < self.config.npc_board_rate_per_sec * dt:
            weight = 50 + self.random.random() * 90
            if elevator.load_kg + weight < elevator.overload_limit_kg:
                elevator.load_kg += weight
                self.log(f"NPC boarded (~{round(weight)} kg)")
                elevator.request_external(int(self.random.random() * elevator.floors), "NPC")
            else:
                self.log("NPC blocked by overload")
            elevator.last_door_action_ms = now
        if self.random.random() < self.config.npc_exit_rate_per_sec * dt:
            reserved = self.config.passenger_weight_kg if elevator.occupant_present else 0.0
            available = elevator.load_kg - reserved
            if available > 0:
                out = min(available, 20 + self.random.random() * 80)
                elevator.load_kg = max(0.0, elevator.load_kg - out)
                self.log(f"NPC exited (~{round(out)} kg)")
                elevator.last_door_action_ms = now

    # -- boarding gate ------------------------------------------------------

    def step_boarding(self, dt: float) -> None:
        elevator = self.elevator
        if not (elevator.doors_open and elevator.door_progress > BOARDING_PROGRESS):
            return
        floor = elevator.current_floor
        self.mark_calls_served_at_floor(floor)
        if not elevator.cooldown_elapsed():
            return
        if (
            self.config.boarding_mode == BoardingMode.AUTO
            and elevator.door_progress >= AUTO_TRANSFER_PROGRESS
            and not elevator.cycle_handled
        ):
            self._schedule_auto_transfer(floor)
        self._npc_load_churn(dt)

    def _schedule_auto_transfer(self, floor: int) -> None:
        elevator = self.elevator
        # Once per door-open cycle; the flag resets when the doors close.
        elevator.cycle_handled = True
        if not elevator.occupant_present and floor == self.passenger_floor:
            self.schedule(
                EventKind.AUTO_BOARD,
                self.config.auto_board_delay_ms / 1000.0,
                payload=str(floor),
                action=lambda: self._auto_board(floor),
            )
        elif (
            elevator.occupant_present
            and elevator.arrival_floor == floor
            and self.passenger_destination == floor
        ):
            self.schedule(
                EventKind.AUTO_EXIT,
                self.config.auto_exit_delay_ms / 1000.0,
                payload=str(floor),
                action=lambda: self._auto_exit(floor),
            )

    def _transfer_still_valid(self, floor: int) -> bool:
        elevator = self.elevator
        return (
            elevator.doors_open
            and elevator.door_progress >= AUTO_TRANSFER_PROGRESS
            and elevator.current_floor == floor
        )

    def _auto_board(self, floor: int) -> None:
        elevator = self.elevator
        if (
            self._transfer_still_valid(floor)
            and not elevator.occupant_present
            and self.passenger_floor == floor
            and self.enter_passenger()
        ):
            return
        elevator.cycle_handled = False

    def _auto_exit(self, floor: int) -> None:
        elevator = self.elevator
        if (
            self._transfer_still_valid(floor)
            and elevator.occupant_present
            and elevator.arrival_floor == floor
            and self.exit_passenger()
        ):
            return
        elevator.cycle_handled = False

    # -- passenger commands -------------------------------------------------

    def enter_passenger(self) -> bool:
        elevator = self.elevator
        floor = elevator.current_floor
        if floor != self.passenger_floor:
            logger.debug("boarding refused: cabin at %d, passenger at %d", floor, self.passenger_floor)
            return False
        if not elevator.enter_passenger(self.config.passenger_weight_kg):
            logger.debug("boarding refused at floor %d", floor)
            return False
        self.log(f"You boarded at floor {floor}")
        self._emit("boarded", {"floor": floor})
        return True

    def exit_passenger(self) -> bool:
        elevator = self.elevator
        floor = elevator.current_floor
        if not elevator.exit_passenger(self.config.passenger_weight_kg):
            logger.debug("exit refused at floor %d", floor)
            return False
        self.passenger_floor = floor
        self.passenger_destination = None
        self.log(f"You exited at floor {floor}")
        self._emit("exited", {"floor": floor})
        return True

    def request_destination(self, floor: int) -> bool:
        elevator = self.elevator
        if not elevator.occupant_present:
            self.log("Keypad is only active inside the cabin.")
            return False
        floor = elevator.clamp_floor(floor)
        accepted = elevator.request_floor(floor)
        if accepted or floor == elevator.target_floor or floor in elevator.queue:
            self.passenger_destination = floor
        if accepted:
            self.log(f"Requested floor {floor}")
        return accepted

    def open_doors(self) -> bool:
        ok = self.elevator.open_doors()
        self.log("Doors opened." if ok else "Failed to open doors.")
        return ok

    def close_doors(self) -> bool:
        ok = self.elevator.close_doors()
        self.log("Doors closed." if ok else "Door closing held.")
        return ok

    def trigger_alarm(self, requester: str = PASSENGER) -> ScheduledEvent:
        self.log("Alarm pressed, help notified (simulated).")
        self._emit("alarm", {"requester": requester})
        return self.schedule(EventKind.AUTO_REPAIR, self.config.alarm_repair_delay_s, payload="control")

    def emergency_stop(self) -> bool:
        self.elevator.enter_emergency()
        self.log("Emergency stop engaged.")
        self._emit("emergency", {"active": True})
        return True

    def acknowledge_emergency(self) -> bool:
        cleared = self.elevator.clear_emergency()
        if cleared:
            self.log("Emergency acknowledged.")
            self._emit("emergency", {"active": False})
        return cleared

    # -- readouts -----------------------------------------------------------

    @property
    def current_floor(self) -> int:
        return self.elevator.current_floor

    def status(self) -> dict:
        elevator = self.elevator
        return {
            "time_ms": self.now_ms,
            "floor": elevator.current_floor,
            "state": elevator.state.value,
            "position": elevator.position,
            "velocity": elevator.velocity,
            "target_floor": elevator.target_floor,
            "queue": list(elevator.queue),
            "doors_open": elevator.doors_open,
            "door_progress": elevator.door_progress,
            "door_held": elevator.door_held,
            "load_kg": elevator.load_kg,
            "occupant_present": elevator.occupant_present,
            "passenger_floor": self.passenger_floor,
            "passenger_destination": self.passenger_destination,
            "components": dict(elevator.components),
            "calls": [call.to_dict() for call in self.calls],
        }

    def _on_arrived(self, payload: dict) -> None:
        # Coarse steps can open and auto-close the doors within one tick.
        if self.elevator.doors_open:
            self.mark_calls_served_at_floor(payload["floor"])

    def _forward(self, event: str):
        def callback(payload: dict) -> None:
            self._emit(event, payload)

        return callback
