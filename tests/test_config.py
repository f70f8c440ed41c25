from __future__ import annotations

import pytest

from liftsim import AutoClosePolicy, BoardingMode, CloseGuard, LiftConfig, World


def test_presets_bundle_door_variants():
    auto = LiftConfig.preset("auto")
    assert auto.boarding_mode == BoardingMode.AUTO
    assert auto.auto_close == AutoClosePolicy.WHEN_VACANT
    assert auto.close_guard == CloseGuard.OCCUPANT_OVERLOAD

    manual = LiftConfig.preset("Manual")
    assert manual.boarding_mode == BoardingMode.MANUAL
    assert manual.auto_close == AutoClosePolicy.UNCONDITIONAL
    assert manual.close_guard == CloseGuard.DOOR_HEALTH

    with pytest.raises(ValueError):
        LiftConfig.preset("express")


def test_from_dict_applies_overrides():
    config = LiftConfig.from_dict(
        {
            "preset": "manual",
            "floors": 12,
            "auto_close": "disabled",
            "jam_delay_s": [1, 2],
            "colour": "blue",
        }
    )
    assert config.floors == 12
    assert config.boarding_mode == BoardingMode.MANUAL
    assert config.auto_close == AutoClosePolicy.DISABLED
    assert config.jam_delay_s == (1, 2)


def test_npc_count_scales_with_floors():
    assert LiftConfig(floors=100).npc_count == 2
    assert LiftConfig(floors=10).npc_count == 0
    assert LiftConfig().top_floor == 17


@pytest.mark.parametrize(
    "overrides",
    [
        {"floors": 1},
        {"initial_floor": 18},
        {"max_speed_mps": 0},
        {"door_speed": -1},
        {"event_cap_per_minute": -1},
        {"repair_delay_s": (40, 12)},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValueError):
        LiftConfig().with_overrides(**overrides)


def test_unknown_enum_value_rejected():
    with pytest.raises(ValueError):
        LiftConfig.from_dict({"boarding_mode": "telepathic"})


def test_world_rejects_unknown_scheduler():
    with pytest.raises(ValueError):
        World(config=LiftConfig(scheduler_name="elevator-algorithm"))
