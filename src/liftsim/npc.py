from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable, List, Optional

from .calls import Call, Direction

CALL_PROBABILITY = 0.28

SubmitCall = Callable[[int, Direction, str], Optional[Call]]


@dataclass
class Npc:
    """Background resident who occasionally calls the lift."""

    npc_id: str
    next_action_ms: float
    busy_until_ms: float = 0.0

    def tick(self, now_ms: float, floors: int, rng: random.Random, submit: SubmitCall) -> None:
        if now_ms >= self.next_action_ms and not self.busy_until_ms:
            if rng.random() < CALL_PROBABILITY:
                floor = int(rng.random() * floors)
                direction = Direction.UP if rng.random() < 0.5 else Direction.DOWN
                submit(floor, direction, self.npc_id)
                self.busy_until_ms = now_ms + rng.uniform(20_000, 80_000)
                self.next_action_ms = now_ms + rng.uniform(40_000, 160_000)
            else:
                self.next_action_ms = now_ms + rng.uniform(25_000, 120_000)
        if self.busy_until_ms and now_ms >= self.busy_until_ms:
            self.busy_until_ms = 0.0

    def to_dict(self) -> dict:
        return {
            "npc_id": self.npc_id,
            "next_action_ms": self.next_action_ms,
            "busy_until_ms": self.busy_until_ms,
        }


def spawn_npcs(count: int, now_ms: float, rng: random.Random) -> List[Npc]:
    return [
        Npc(npc_id=f"NPC-{i + 1}", next_action_ms=now_ms + rng.uniform(20_000, 90_000))
        for i in range(count)
    ]
