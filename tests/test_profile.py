import math

import pytest

from stepflash.profile import Direction, SpeedProfile


def _profile(max_speed=1000.0, acceleration=1000.0):
    profile = SpeedProfile()
    profile.set_acceleration(acceleration, 0)
    profile.set_max_speed(max_speed, 0)
    return profile


def test_defaults_are_one_and_at_rest():
    profile = SpeedProfile()
    assert profile.max_speed == 1.0
    assert profile.acceleration == 1.0
    assert profile.speed == 0.0
    assert profile.step_interval == 0
    assert profile.n == 0


def test_first_step_from_rest_uses_initial_interval():
    profile = _profile()
    interval = profile.compute_new_speed(100)
    assert interval == int(profile.c0)
    assert profile.direction is Direction.CW
    assert profile.n == 1
    assert profile.speed > 0


def test_negative_distance_runs_counter_clockwise():
    profile = _profile()
    profile.compute_new_speed(-100)
    assert profile.direction is Direction.CCW
    assert profile.speed < 0


def test_acceleration_is_monotonic_and_capped_at_max_speed():
    profile = _profile()
    previous = profile.compute_new_speed(100_000)
    for _ in range(2000):
        interval = profile.compute_new_speed(100_000)
        assert interval <= previous
        assert profile.cn >= profile.cmin
        previous = interval
    assert profile.step_interval == int(profile.cmin)
    assert profile.speed == pytest.approx(profile.max_speed)


def test_deceleration_when_target_near():
    profile = _profile()
    for _ in range(200):
        profile.compute_new_speed(100_000)
    fast = profile.step_interval
    profile.compute_new_speed(1)
    assert profile.n <= 0
    assert profile.step_interval > fast


def test_stopped_at_target():
    profile = _profile()
    profile.compute_new_speed(5)
    assert profile.compute_new_speed(0) == 0
    assert profile.speed == 0.0
    assert profile.n == 0


def test_set_speed_is_clamped_to_max_speed():
    profile = _profile(max_speed=100.0)
    profile.set_speed(500.0)
    assert profile.speed == 100.0
    assert profile.step_interval == 10000
    assert profile.direction is Direction.CW
    profile.set_speed(-500.0)
    assert profile.speed == -100.0
    assert profile.direction is Direction.CCW


def test_set_speed_zero_stops_stepping():
    profile = _profile()
    profile.set_speed(50.0)
    profile.set_speed(0.0)
    assert profile.step_interval == 0
    assert profile.speed == 0.0


def test_steps_to_stop_follows_speed_and_acceleration():
    profile = _profile(max_speed=1000.0, acceleration=100.0)
    profile.set_speed(100.0)
    assert profile.steps_to_stop() == 50


def test_zero_acceleration_is_ignored():
    profile = _profile(acceleration=250.0)
    profile.set_acceleration(0.0, 0)
    assert profile.acceleration == 250.0


def test_negative_values_lose_their_sign():
    profile = SpeedProfile()
    profile.set_acceleration(-4.0, 0)
    profile.set_max_speed(-20.0, 0)
    assert profile.acceleration == 4.0
    assert profile.max_speed == 20.0
    assert profile.cmin == pytest.approx(1_000_000.0 / 20.0)


def test_initial_interval_shrinks_with_more_acceleration():
    slow = _profile(acceleration=10.0)
    fast = _profile(acceleration=1000.0)
    assert fast.c0 < slow.c0
    assert slow.c0 / fast.c0 == pytest.approx(math.sqrt(100.0))


def test_zero_max_speed_is_rejected():
    profile = SpeedProfile()
    with pytest.raises(ValueError):
        profile.set_max_speed(0.0, 0)


def test_raising_acceleration_scales_step_counter_down():
    profile = _profile(acceleration=100.0)
    for _ in range(50):
        profile.compute_new_speed(100_000)
    before = profile.n
    profile.set_acceleration(1000.0, 100_000)
    assert profile.n < before


def test_reset_brings_profile_to_rest():
    profile = _profile()
    for _ in range(10):
        profile.compute_new_speed(1000)
    profile.reset()
    assert profile.speed == 0.0
    assert profile.step_interval == 0
    assert profile.n == 0