from __future__ import annotations

from typing import Dict, Type

from .fcfs import FirstComeFirstServedScheduler
from .interface import CallView, Scheduler
from .nearest import NearestCallScheduler

__all__ = [
    "CallView",
    "FirstComeFirstServedScheduler",
    "NearestCallScheduler",
    "Scheduler",
    "get_scheduler",
]


SCHEDULER_REGISTRY: Dict[str, Type[Scheduler]] = {
    "nearest": NearestCallScheduler,
    "fcfs": FirstComeFirstServedScheduler,
}


def get_scheduler(name: str, **kwargs) -> Scheduler:
    cls = SCHEDULER_REGISTRY.get(name.lower())
    if cls is None:
        raise ValueError(f"Unknown scheduler '{name}'. Available: {', '.join(SCHEDULER_REGISTRY)}")
    return cls(**kwargs)
