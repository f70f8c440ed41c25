from __future__ import annotations

from typing import Iterable, Optional, Protocol


class CallView(Protocol):
    """The parts of a hall call a dispatch policy may look at."""

    floor: int
    status: str
    created_ms: float


class Scheduler(Protocol):
    """Strategy interface for choosing which pending call the cabin serves next."""

    def select_call(self, current_floor: int, calls: Iterable[CallView]) -> Optional[CallView]:
        """
        Return the pending call to assign, or ``None`` when nothing is pending.

        Calls that are already assigned or served must be ignored. Ties are
        broken by list order: the first matching call wins.
        """
        ...


def pending_calls(calls: Iterable[CallView]) -> list:
    return [call for call in calls if call.status == "pending"]
