from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - import cycle safe typing
    from .world import World

logger = logging.getLogger(__name__)


class SimClock:
    """Monotonic simulated time in milliseconds.

    Every timestamp in the simulation (cooldowns, debounce windows, scheduled
    events, NPC timers) is read from one of these so a run can be replayed
    without real delays.
    """

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now_ms = float(start_ms)

    def now_ms(self) -> float:
        return self._now_ms

    def advance(self, seconds: float) -> None:
        if seconds > 0:
            self._now_ms += seconds * 1000.0

    def set(self, now_ms: float) -> None:
        self._now_ms = float(now_ms)


class FixedStepRunner:
    """Feeds wall-clock frame time into fixed-size world ticks.

    At most ``max_steps`` ticks run per frame; time left over once the cap is
    hit is dropped instead of being carried into the next frame.
    """

    def __init__(
        self,
        world: "World",
        step_s: float = 1.0 / 60.0,
        max_steps: int = 8,
        max_frame_s: float = 0.2,
    ) -> None:
        self.world = world
        self.step_s = step_s
        self.max_steps = max(1, max_steps)
        self.max_frame_s = max_frame_s
        self.accumulator = 0.0
        self.dropped_s = 0.0

    def feed(self, elapsed_s: float) -> int:
        self.accumulator += min(self.max_frame_s, max(0.0, elapsed_s))
        steps = 0
        while self.accumulator >= self.step_s and steps < self.max_steps:
            self.world.step(self.step_s)
            self.accumulator -= self.step_s
            steps += 1
        if self.accumulator >= self.step_s:
            self.dropped_s += self.accumulator
            logger.debug("dropping %.3fs of backlog after %d steps", self.accumulator, steps)
            self.accumulator = 0.0
        return steps


def fast_forward(
    world: "World",
    elapsed_s: float,
    chunk_s: float = 5.0,
    horizon_s: float = 600.0,
    min_s: float = 2.0,
) -> float:
    """Replay coarse steps for time that passed while the world was offline.

    Not time-accurate: the world advances in ``chunk_s`` steps and never more
    than ``horizon_s`` in total. Returns the simulated seconds replayed.
    """

    total = min(max(0.0, float(elapsed_s)), horizon_s)
    if total <= min_s:
        return 0.0
    ran = 0.0
    while ran < total:
        world.step(min(chunk_s, total - ran))
        ran += chunk_s
    world.log(f"Fast-forwarded {round(total)}s since last session")
    return total
