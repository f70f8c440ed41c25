from __future__ import annotations

import pytest

from conftest import TICK, quiet_config, run_elevator
from liftsim import AutoClosePolicy, Elevator, ElevatorState, SimClock


def open_fully(elevator: Elevator, clock: SimClock) -> None:
    assert elevator.open_doors()
    run_elevator(elevator, clock, 1.0)
    assert elevator.door_progress == 1.0


class TestMotion:
    def test_reaches_requested_floor_and_rests(self, elevator, clock):
        assert elevator.request_floor(5)
        assert elevator.target_floor == 5

        run_elevator(elevator, clock, 30.0)

        assert elevator.current_floor == 5
        assert elevator.velocity == 0
        assert elevator.position == pytest.approx(15.0)
        assert elevator.arrival_floor == 5
        assert elevator.target_floor is None

    def test_requests_are_clamped_to_building(self, elevator, clock):
        elevator.request_floor(42)
        elevator.request_floor(-3)
        assert elevator.target_floor == 9
        assert elevator.queue == [0]

        run_elevator(elevator, clock, 60.0)

        assert elevator.current_floor == 0
        assert elevator.velocity == 0

    def test_speed_never_exceeds_limit(self, elevator, clock):
        elevator.request_floor(9)
        for _ in range(int(20 / TICK)):
            clock.advance(TICK)
            elevator.step(TICK)
            assert abs(elevator.velocity) <= elevator.config.max_speed_mps

    def test_request_at_current_floor_opens_doors(self, elevator, clock):
        assert elevator.request_floor(0)
        run_elevator(elevator, clock, TICK)
        assert elevator.arrival_floor == 0
        assert elevator.doors_open

    def test_arrival_notification(self, elevator, clock):
        arrivals = []
        doors = []
        elevator.on_event("arrived", arrivals.append)
        elevator.on_event("door", lambda payload: doors.append(payload["state"]))

        elevator.request_floor(2)
        run_elevator(elevator, clock, 20.0)

        assert arrivals == [{"floor": 2}]
        assert doors == ["open", "closed"]


class TestQueue:
    def test_duplicates_rejected(self, elevator):
        assert elevator.request_floor(5)
        assert not elevator.request_floor(5)
        assert elevator.request_floor(3)
        assert not elevator.request_floor(3)
        assert elevator.target_floor == 5
        assert elevator.queue == [3]

    def test_nearest_queued_floor_wins_and_first_breaks_ties(self, clock):
        elevator = Elevator(config=quiet_config(initial_floor=5), clock=clock)
        elevator.queue = [7, 3, 8]
        elevator.pop_next_target()
        assert elevator.target_floor == 7
        assert elevator.queue == [3, 8]

    @pytest.mark.parametrize("queue, expected", [([7, 3], 7), ([3, 7], 3)])
    def test_exact_tie_goes_to_earlier_request(self, clock, queue, expected):
        elevator = Elevator(config=quiet_config(initial_floor=5), clock=clock)
        elevator.queue = list(queue)
        elevator.pop_next_target()
        assert elevator.target_floor == expected
        assert elevator.queue == [floor for floor in queue if floor != expected]

    def test_request_while_doors_open_is_queued(self, elevator, clock):
        open_fully(elevator, clock)
        assert elevator.request_floor(4)
        assert elevator.target_floor is None
        assert elevator.queue == [4]


class TestDoors:
    def test_open_doors_stop_motion(self, elevator, clock):
        elevator.request_floor(6)
        run_elevator(elevator, clock, 2.0)
        assert elevator.velocity > 0

        assert elevator.open_doors()
        run_elevator(elevator, clock, TICK)
        assert elevator.velocity == 0
        assert elevator.acceleration == 0

        for _ in range(int(3.0 / TICK)):
            clock.advance(TICK)
            elevator.step(TICK)
            assert 0.0 <= elevator.door_progress <= 1.0
            if elevator.doors_open and elevator.door_progress > 0.05:
                assert elevator.acceleration == 0
                assert elevator.state == ElevatorState.DOOR_OPEN

    def test_open_refused_when_door_broken(self, elevator, clock):
        elevator.components["door"] = 0
        assert not elevator.open_doors()
        run_elevator(elevator, clock, 1.0)
        assert not elevator.doors_open
        assert elevator.door_progress == 0

    def test_close_refused_for_overloaded_occupant(self, elevator, clock):
        open_fully(elevator, clock)
        assert elevator.enter_passenger(75)
        elevator.load_kg = 1900
        assert not elevator.close_doors()
        assert elevator.doors_open
        elevator.load_kg = 1000
        assert elevator.close_doors()
        assert not elevator.doors_open

    def test_close_refused_for_failing_door_in_manual_variant(self, clock):
        elevator = Elevator(config=quiet_config("manual"), clock=clock)
        open_fully(elevator, clock)
        elevator.components["door"] = 2
        assert not elevator.close_doors()
        elevator.components["door"] = 50
        assert elevator.close_doors()

    def test_unconditional_auto_close_ignores_occupant(self, clock):
        elevator = Elevator(config=quiet_config("manual"), clock=clock)
        open_fully(elevator, clock)
        assert elevator.enter_passenger(75)
        run_elevator(elevator, clock, 3.0)
        assert not elevator.doors_open

    def test_vacant_auto_close_waits_for_occupant(self, elevator, clock):
        open_fully(elevator, clock)
        assert elevator.enter_passenger(75)
        run_elevator(elevator, clock, 5.0)
        assert elevator.doors_open

    def test_vacant_auto_close_closes_empty_cabin(self, elevator, clock):
        open_fully(elevator, clock)
        run_elevator(elevator, clock, 3.0)
        assert not elevator.doors_open

    def test_disabled_auto_close_keeps_doors_open(self, clock):
        elevator = Elevator(config=quiet_config(auto_close=AutoClosePolicy.DISABLED), clock=clock)
        open_fully(elevator, clock)
        run_elevator(elevator, clock, 10.0)
        assert elevator.doors_open

    def test_held_doors_ignore_commands(self, elevator, clock):
        elevator.force_doors(False)
        assert not elevator.open_doors()
        elevator.release_doors()
        assert elevator.open_doors()

    def test_release_rearms_auto_close_after_open_jam(self, elevator, clock):
        elevator.force_doors(True)
        assert elevator.auto_close_at_ms is None
        run_elevator(elevator, clock, 10.0)
        assert elevator.doors_open

        elevator.release_doors()
        assert elevator.auto_close_at_ms == clock.now_ms() + elevator.config.auto_close_ms
        run_elevator(elevator, clock, 4.0)
        assert not elevator.doors_open

    def test_release_keeps_disabled_auto_close_off(self, clock):
        elevator = Elevator(config=quiet_config(auto_close=AutoClosePolicy.DISABLED), clock=clock)
        elevator.force_doors(True)
        elevator.release_doors()
        assert elevator.auto_close_at_ms is None


class TestOccupancy:
    def test_enter_needs_open_doors(self, elevator):
        assert not elevator.enter_passenger(75)
        assert elevator.load_kg == 0

    def test_enter_twice_fails(self, elevator, clock):
        open_fully(elevator, clock)
        assert elevator.enter_passenger(75)
        assert not elevator.enter_passenger(75)
        assert elevator.load_kg == 75
        assert elevator.occupant_present

    def test_exit_twice_fails(self, elevator, clock):
        open_fully(elevator, clock)
        assert elevator.enter_passenger(75)
        run_elevator(elevator, clock, 1.5)
        assert elevator.exit_passenger(75)
        assert not elevator.exit_passenger(75)
        assert elevator.load_kg == 0
        assert not elevator.occupant_present

    def test_cooldown_blocks_quick_exit(self, elevator, clock):
        open_fully(elevator, clock)
        assert elevator.enter_passenger(75)
        assert not elevator.exit_passenger(75)
        run_elevator(elevator, clock, 1.3)
        assert elevator.exit_passenger(75)

    def test_overload_rejected(self, elevator, clock):
        open_fully(elevator, clock)
        elevator.load_kg = elevator.overload_limit_kg - 10
        assert not elevator.enter_passenger(20)
        assert elevator.load_kg == elevator.overload_limit_kg - 10
        assert not elevator.occupant_present


class TestEmergency:
    def test_emergency_freezes_until_cleared(self, elevator, clock):
        elevator.request_floor(5)
        run_elevator(elevator, clock, 2.0)
        elevator.enter_emergency()
        frozen_at = elevator.position

        run_elevator(elevator, clock, 2.0)
        assert elevator.state == ElevatorState.EMERGENCY
        assert elevator.position == frozen_at
        assert elevator.velocity == 0

        assert elevator.clear_emergency()
        assert not elevator.clear_emergency()
        run_elevator(elevator, clock, 30.0)
        assert elevator.current_floor == 5
