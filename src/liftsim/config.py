from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Dict, Tuple


class BoardingMode(str, Enum):
    """Who moves the tracked passenger in and out of the cabin."""

    AUTO = "auto"
    MANUAL = "manual"


class AutoClosePolicy(str, Enum):
    WHEN_VACANT = "when_vacant"
    UNCONDITIONAL = "unconditional"
    DISABLED = "disabled"


class CloseGuard(str, Enum):
    OCCUPANT_OVERLOAD = "occupant_overload"
    DOOR_HEALTH = "door_health"


@dataclass(frozen=True)
class LiftConfig:
    """Immutable simulation parameters, assembled once and shared by reference."""

    floors: int = 18
    initial_floor: int = 0
    floor_height_m: float = 3.0
    max_speed_mps: float = 2.2
    accel_mps2: float = 1.0
    brake_mps2: float = 1.6
    passenger_weight_kg: float = 75.0
    door_cooldown_ms: int = 1200
    auto_close_ms: int = 3500
    npc_traffic_factor: float = 0.02
    npc_board_rate_per_sec: float = 0.08
    npc_exit_rate_per_sec: float = 0.05
    random_event_rate_per_sec: float = 0.00045
    event_cap_per_minute: int = 4
    auto_board_delay_ms: int = 200
    auto_exit_delay_ms: int = 200
    overload_limit_kg: float = 1800.0
    min_door_health: float = 5.0
    call_debounce_ms: int = 1800
    door_speed: float = 0.9
    speed_gain: float = 1.8
    idle_damping: float = 1.8
    log_tail_size: int = 400
    call_history_size: int = 100
    door_jam_probability: float = 0.6
    jam_delay_s: Tuple[float, float] = (6.0, 20.0)
    jam_damage: Tuple[float, float] = (6.0, 18.0)
    repair_delay_s: Tuple[float, float] = (12.0, 40.0)
    repair_amount: Tuple[float, float] = (12.0, 40.0)
    alarm_repair_delay_s: float = 8.0
    scheduler_name: str = "nearest"
    boarding_mode: BoardingMode = BoardingMode.AUTO
    auto_close: AutoClosePolicy = AutoClosePolicy.WHEN_VACANT
    close_guard: CloseGuard = CloseGuard.OCCUPANT_OVERLOAD

    @property
    def npc_count(self) -> int:
        return max(0, int(round(self.floors * self.npc_traffic_factor)))

    @property
    def top_floor(self) -> int:
        return self.floors - 1

    def validate(self) -> None:
        if self.floors < 2:
            raise ValueError("Building must have at least two floors")
        if not 0 <= self.initial_floor < self.floors:
            raise ValueError("Initial floor must be within building range")
        if self.floor_height_m <= 0:
            raise ValueError("Floor height must be positive")
        if self.max_speed_mps <= 0 or self.accel_mps2 <= 0 or self.brake_mps2 <= 0:
            raise ValueError("Speed, acceleration and brake limits must be positive")
        if self.door_speed <= 0:
            raise ValueError("Door speed must be positive")
        if self.overload_limit_kg <= 0:
            raise ValueError("Overload limit must be positive")
        if self.event_cap_per_minute < 0:
            raise ValueError("Event cap cannot be negative")
        for name in ("jam_delay_s", "jam_damage", "repair_delay_s", "repair_amount"):
            low, high = getattr(self, name)
            if low > high:
                raise ValueError(f"{name} range is inverted")

    def with_overrides(self, **overrides) -> "LiftConfig":
        cfg = replace(self, **overrides)
        cfg.validate()
        return cfg

    @classmethod
    def preset(cls, name: str) -> "LiftConfig":
        """Return one of the named door/boarding variants.

        ``auto`` boards and drops the passenger automatically, closes the doors
        only when the cabin is vacant and refuses to close an overloaded
        occupied cabin. ``manual`` leaves boarding to explicit commands,
        closes on an unconditional timer and guards closing on door health.
        """

        presets: Dict[str, Dict[str, Enum]] = {
            "auto": {
                "boarding_mode": BoardingMode.AUTO,
                "auto_close": AutoClosePolicy.WHEN_VACANT,
                "close_guard": CloseGuard.OCCUPANT_OVERLOAD,
            },
            "manual": {
                "boarding_mode": BoardingMode.MANUAL,
                "auto_close": AutoClosePolicy.UNCONDITIONAL,
                "close_guard": CloseGuard.DOOR_HEALTH,
            },
        }
        chosen = presets.get(name.lower())
        if chosen is None:
            raise ValueError(f"Unknown preset '{name}'. Available: {', '.join(presets)}")
        return cls(**chosen)

    @classmethod
    def from_dict(cls, data: Dict) -> "LiftConfig":
        base = cls.preset(data["preset"]) if data.get("preset") else cls()
        known = {f.name for f in fields(cls)}
        overrides = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key == "boarding_mode":
                value = BoardingMode(value)
            elif key == "auto_close":
                value = AutoClosePolicy(value)
            elif key == "close_guard":
                value = CloseGuard(value)
            elif isinstance(value, list):
                value = tuple(value)
            overrides[key] = value
        return base.with_overrides(**overrides)
