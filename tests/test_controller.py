"""Tests for closed-loop height targeting against a simulated desk."""

from __future__ import annotations

import asyncio

import pytest

from conftest import SimulatedDesk
from uplift.codec import Height
from uplift.controller import ControlState, HeightController
from uplift.errors import DeskReadError, HeightOutOfRangeError
from uplift.protocol import MotorPulse


def make_controller(desk: SimulatedDesk, **kwargs) -> HeightController:
    kwargs.setdefault("tolerance", 0.25)
    return HeightController(desk, clock=desk.clock, **kwargs)


def test_already_at_target_issues_no_pulse():
    desk = SimulatedDesk(28.0)
    controller = make_controller(desk)

    result = asyncio.run(controller.run(Height(28.0)))

    assert result.state is ControlState.REACHED
    assert result.pulses == 0
    assert desk.pulses == []
    assert desk.calls == [("query",), ("stop",)]


def test_within_tolerance_counts_as_reached():
    desk = SimulatedDesk(28.2)
    result = asyncio.run(make_controller(desk).run(Height(28.0)))
    assert result.reached
    assert desk.pulses == []


def test_moves_up_to_target():
    desk = SimulatedDesk(25.0, speed=0.5)
    controller = make_controller(desk)

    result = asyncio.run(controller.run(Height(30.0)))

    assert result.state is ControlState.REACHED
    assert 29.75 <= result.final_height.inches <= 30.25
    assert desk.pulses
    assert all(p[1] is MotorPulse.UP for p in desk.pulses)
    assert all(0 < p[2] <= controller.max_pulse for p in desk.pulses)
    assert desk.calls[-1] == ("stop",)


def test_pulses_shrink_near_target():
    desk = SimulatedDesk(25.0, speed=0.5)
    asyncio.run(make_controller(desk).run(Height(30.0)))

    durations = [p[2] for p in desk.pulses]
    assert durations == sorted(durations, reverse=True)
    assert durations[-1] < durations[0]


def test_moves_down_to_target():
    desk = SimulatedDesk(40.0, speed=0.8)
    result = asyncio.run(make_controller(desk).run(Height(32.0)))

    assert result.reached
    assert all(p[1] is MotorPulse.DOWN for p in desk.pulses)


def test_overshoot_reverses_with_smaller_pulse():
    desk = SimulatedDesk(25.0, speed=3.0)
    controller = make_controller(desk)

    result = asyncio.run(controller.run(Height(30.0)))

    assert result.reached
    directions = [p[1] for p in desk.pulses]
    assert MotorPulse.DOWN in directions
    assert controller.session.gain < 1.0


def test_stuck_desk_times_out_after_iteration_budget():
    desk = SimulatedDesk(25.0, speed=0.0)
    controller = make_controller(desk, max_iterations=5, timeout=1000.0)

    result = asyncio.run(controller.run(Height(30.0)))

    assert result.state is ControlState.TIMED_OUT
    assert result.iterations == 5
    assert len(desk.pulses) == 5
    assert desk.calls[-1] == ("stop",)


def test_deadline_bounds_the_loop():
    desk = SimulatedDesk(25.0, speed=0.0)
    controller = make_controller(desk, max_iterations=1000, timeout=5.0)

    result = asyncio.run(controller.run(Height(30.0)))

    assert result.state is ControlState.TIMED_OUT
    assert desk.now <= 5.0
    assert result.iterations < 1000
    assert desk.calls[-1] == ("stop",)


@pytest.mark.parametrize("start", [24.5, 27.3, 36.0, 50.0])
@pytest.mark.parametrize("target", [25.0, 31.7, 44.4, 50.5])
@pytest.mark.parametrize("speed", [0.2, 0.7, 1.4])
def test_always_terminates_with_stop(start, target, speed):
    desk = SimulatedDesk(start, speed=speed)
    controller = make_controller(desk, max_iterations=30, timeout=60.0)

    result = asyncio.run(controller.run(Height(target)))

    assert result.state in (ControlState.REACHED, ControlState.TIMED_OUT)
    assert len(desk.pulses) <= 30
    assert desk.calls[-1] == ("stop",)
    if result.reached:
        assert abs(result.final_height.inches - target) <= 0.25


def test_target_outside_envelope_is_rejected():
    desk = SimulatedDesk(28.0)
    with pytest.raises(HeightOutOfRangeError):
        asyncio.run(make_controller(desk).run(Height(70.0)))
    assert desk.calls == []


def test_link_failure_ends_in_error_and_stops():
    desk = SimulatedDesk(25.0)
    queries = 0
    original_query = desk.query_height

    async def flaky_query():
        nonlocal queries
        queries += 1
        if queries == 2:
            raise DeskReadError("lost")
        return await original_query()

    desk.query_height = flaky_query
    controller = make_controller(desk)

    with pytest.raises(DeskReadError):
        asyncio.run(controller.run(Height(30.0)))

    assert controller.session.state is ControlState.ERROR
    assert isinstance(controller.session.error, DeskReadError)
    assert desk.calls[-1] == ("stop",)


def test_cancellation_stops_motor():
    desk = SimulatedDesk(25.0)

    async def cancelled_pulse(direction, duration):
        raise asyncio.CancelledError()

    desk.pulse = cancelled_pulse
    controller = make_controller(desk)

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(controller.run(Height(30.0)))

    assert controller.session.state is ControlState.ERROR
    assert controller.session.error.kind == "Cancelled"
    assert desk.calls[-1] == ("stop",)
