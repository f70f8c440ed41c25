from __future__ import annotations

from typing import Iterable, Optional

from .interface import CallView, pending_calls


class FirstComeFirstServedScheduler:
    """Serves the oldest outstanding call regardless of distance."""

    def select_call(self, current_floor: int, calls: Iterable[CallView]) -> Optional[CallView]:
        open_calls = pending_calls(calls)
        if not open_calls:
            return None
        # sorted() is stable, so equal timestamps keep list order
        return sorted(open_calls, key=lambda call: call.created_ms)[0]
