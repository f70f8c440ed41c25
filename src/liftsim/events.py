from __future__ import annotations

import itertools
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from .clock import SimClock

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    DOOR_JAM = "door_jam"
    AUTO_REPAIR = "auto_repair"
    AUTO_BOARD = "auto_board"
    AUTO_EXIT = "auto_exit"


# Continuations hold closures and are dropped from snapshots.
PERSISTENT_KINDS = (EventKind.DOOR_JAM, EventKind.AUTO_REPAIR)


@dataclass
class ScheduledEvent:
    """A future occurrence, fired once when the clock reaches ``fire_at_ms``."""

    fire_at_ms: float
    kind: EventKind
    payload: Optional[str] = None
    action: Optional[Callable[[], None]] = field(default=None, repr=False, compare=False)
    seq: int = 0

    @property
    def persistent(self) -> bool:
        return self.kind in PERSISTENT_KINDS

    def to_dict(self) -> dict:
        return {"fire_at_ms": self.fire_at_ms, "kind": self.kind.value, "payload": self.payload}


class EventScheduler:
    """Ordered list of pending events, drained in fire-time order."""

    def __init__(self, clock: SimClock) -> None:
        self.clock = clock
        self.events: List[ScheduledEvent] = []
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self.events)

    def schedule(
        self,
        kind: EventKind,
        in_seconds: float,
        payload: Optional[str] = None,
        action: Optional[Callable[[], None]] = None,
    ) -> ScheduledEvent:
        fire_at = self.clock.now_ms() + max(0.0, in_seconds) * 1000.0
        return self.schedule_at(kind, fire_at, payload, action)

    def schedule_at(
        self,
        kind: EventKind,
        fire_at_ms: float,
        payload: Optional[str] = None,
        action: Optional[Callable[[], None]] = None,
    ) -> ScheduledEvent:
        event = ScheduledEvent(
            fire_at_ms=fire_at_ms,
            kind=kind,
            payload=payload,
            action=action,
            seq=next(self._seq),
        )
        self.events.append(event)
        self.events.sort(key=lambda ev: (ev.fire_at_ms, ev.seq))
        return event

    def pop_due(self) -> List[ScheduledEvent]:
        now = self.clock.now_ms()
        due = [ev for ev in self.events if ev.fire_at_ms <= now]
        if due:
            self.events = [ev for ev in self.events if ev.fire_at_ms > now]
        return due

    def pending(self, kind: Optional[EventKind] = None) -> List[ScheduledEvent]:
        if kind is None:
            return list(self.events)
        return [ev for ev in self.events if ev.kind == kind]

    def persistent_events(self) -> List[ScheduledEvent]:
        return [ev for ev in self.events if ev.persistent]


@dataclass
class EventWindow:
    """Caps random-event triggers to ``cap`` per rolling minute."""

    start_ms: float = 0.0
    count: int = 0
    cap: int = 4
    length_ms: float = 60_000.0

    def should_trigger(self, now_ms: float, rate_per_sec: float, dt: float, rng: random.Random) -> bool:
        if now_ms - self.start_ms > self.length_ms:
            self.start_ms = now_ms
            self.count = 0
        if self.count >= self.cap:
            return False
        if rng.random() < rate_per_sec * dt:
            self.count += 1
            return True
        return False

    def to_dict(self) -> dict:
        return {"start_ms": self.start_ms, "count": self.count, "cap": self.cap}
