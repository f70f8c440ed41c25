"""Single-cabin elevator simulation core."""

from .calls import PASSENGER, Call, CallStatus, Direction
from .clock import FixedStepRunner, SimClock, fast_forward
from .config import AutoClosePolicy, BoardingMode, CloseGuard, LiftConfig
from .elevator import Elevator, ElevatorState
from .events import EventKind, EventScheduler, EventWindow, ScheduledEvent
from .npc import Npc
from .persistence import deserialize_world, serialize_world
from .world import World

__all__ = [
    "PASSENGER",
    "AutoClosePolicy",
    "BoardingMode",
    "Call",
    "CallStatus",
    "CloseGuard",
    "Direction",
    "Elevator",
    "ElevatorState",
    "EventKind",
    "EventScheduler",
    "EventWindow",
    "FixedStepRunner",
    "LiftConfig",
    "Npc",
    "ScheduledEvent",
    "SimClock",
    "World",
    "deserialize_world",
    "fast_forward",
    "serialize_world",
]
