from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

PASSENGER = "Passenger"


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"


class CallStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    SERVED = "served"


def requester_class(requester: str) -> str:
    """Collapse requester identities into ``passenger`` or ``npc``."""
    return "passenger" if requester == PASSENGER else "npc"


@dataclass
class Call:
    """A hall request for service at a floor in a direction."""

    call_id: int
    floor: int
    direction: Direction
    requester: str
    created_ms: float
    status: CallStatus = CallStatus.PENDING
    assigned_ms: Optional[float] = None
    served_ms: Optional[float] = None

    @property
    def live(self) -> bool:
        return self.status != CallStatus.SERVED

    @property
    def requester_class(self) -> str:
        return requester_class(self.requester)

    def matches(self, floor: int, direction: Direction, requester: str) -> bool:
        return (
            self.floor == floor
            and self.direction == direction
            and self.requester_class == requester_class(requester)
        )

    def assign(self, time_ms: float) -> None:
        self.status = CallStatus.ASSIGNED
        self.assigned_ms = time_ms

    def release(self) -> None:
        self.status = CallStatus.PENDING
        self.assigned_ms = None

    def serve(self, time_ms: float) -> None:
        self.status = CallStatus.SERVED
        self.served_ms = time_ms

    def to_dict(self) -> dict:
        return {
            "call_id": self.call_id,
            "floor": self.floor,
            "direction": self.direction.value,
            "requester": self.requester,
            "created_ms": self.created_ms,
            "status": self.status.value,
            "assigned_ms": self.assigned_ms,
            "served_ms": self.served_ms,
        }
