import itertools

import pytest

from stepflash.multistepper import MAX_STEPPERS, MultiStepper
from stepflash.pins import MotorInterface
from stepflash.stepper import AccelStepper


def _clock(step=1000):
    counter = itertools.count(0, step)
    return lambda: next(counter)


def _stepper(clock, max_speed=100.0):
    stepper = AccelStepper(MotorInterface.FULL4WIRE, clock=clock)
    stepper.set_max_speed(max_speed)
    return stepper


def test_speeds_scaled_so_all_arrive_together():
    clock = _clock()
    first, second = _stepper(clock), _stepper(clock)
    group = MultiStepper()
    group.add_stepper(first)
    group.add_stepper(second)
    group.move_to([100, 50])
    assert first.speed() == pytest.approx(100.0)
    assert second.speed() == pytest.approx(50.0)
    assert first.target_position() == 100
    assert second.target_position() == 50


def test_travel_times_are_equal():
    clock = _clock()
    first, second = _stepper(clock, 40.0), _stepper(clock, 200.0)
    group = MultiStepper()
    group.add_stepper(first)
    group.add_stepper(second)
    group.move_to([80, -300])
    time_first = abs(first.distance_to_go()) / abs(first.speed())
    time_second = abs(second.distance_to_go()) / abs(second.speed())
    assert time_first == pytest.approx(time_second)
    assert second.speed() < 0


def test_run_speed_to_position_reaches_targets():
    clock = _clock()
    first, second = _stepper(clock), _stepper(clock)
    group = MultiStepper()
    group.add_stepper(first)
    group.add_stepper(second)
    group.move_to([20, -7])
    group.run_speed_to_position()
    assert first.current_position() == 20
    assert second.current_position() == -7
    assert group.run() is False


def test_run_reports_motion_until_done():
    clock = _clock()
    stepper = _stepper(clock)
    group = MultiStepper()
    group.add_stepper(stepper)
    group.move_to([3])
    assert group.run() is True
    while group.run():
        pass
    assert stepper.distance_to_go() == 0


def test_no_movement_leaves_speeds_untouched():
    clock = _clock()
    stepper = _stepper(clock)
    group = MultiStepper()
    group.add_stepper(stepper)
    group.move_to([0])
    assert stepper.speed() == 0.0
    assert group.run() is False


def test_too_many_steppers_rejected():
    clock = _clock()
    group = MultiStepper()
    for _ in range(MAX_STEPPERS):
        group.add_stepper(_stepper(clock))
    with pytest.raises(ValueError):
        group.add_stepper(_stepper(clock))
    assert len(group.steppers) == MAX_STEPPERS


def test_too_few_positions_rejected():
    clock = _clock()
    group = MultiStepper()
    group.add_stepper(_stepper(clock))
    group.add_stepper(_stepper(clock))
    with pytest.raises(ValueError):
        group.move_to([5])