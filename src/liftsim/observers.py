from __future__ import annotations

import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

Callback = Callable[[dict], None]


class Observable:
    """Named-event callback registry shared by the elevator and the world."""

    def __init__(self) -> None:
        self.event_hooks: Dict[str, List[Callback]] = {}

    def on_event(self, event: str, callback: Callback) -> None:
        self.event_hooks.setdefault(event, []).append(callback)

    def off_event(self, event: str, callback: Callback) -> None:
        hooks = self.event_hooks.get(event, [])
        if callback in hooks:
            hooks.remove(callback)

    def _emit(self, event: str, payload: dict) -> None:
        logger.debug("emit %s %s", event, payload)
        for callback in list(self.event_hooks.get(event, [])):
            callback(payload)
