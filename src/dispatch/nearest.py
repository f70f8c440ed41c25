from __future__ import annotations

import math
from typing import Iterable, Optional

from .interface import CallView, pending_calls


class NearestCallScheduler:
    """Serves the pending call closest to the cabin's current floor."""

    def select_call(self, current_floor: int, calls: Iterable[CallView]) -> Optional[CallView]:
        best: Optional[CallView] = None
        best_distance = math.inf
        for call in pending_calls(calls):
            distance = abs(call.floor - current_floor)
            if distance < best_distance:
                best_distance = distance
                best = call
        return best
