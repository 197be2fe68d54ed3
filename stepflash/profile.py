"""Step timing for accelerated motion.

The profile works in steps per second.  Each step's interval is worked out
from the previous one, so the motor speeds up, cruises and slows down to a
target smoothly.
"""

from __future__ import annotations

import math
from enum import IntEnum

MICROS_PER_SECOND = 1_000_000.0
_C0_CORRECTION = 0.676


class Direction(IntEnum):
    """Which way the motor is turning."""

    CCW = 0
    CW = 1


class SpeedProfile:
    """Speed, acceleration and step-interval state of one motor.

    ``step_interval`` is the time between steps in whole microseconds; zero
    means the motor is stopped.  Distances passed in are target minus
    current position, positive meaning clockwise.
    """

    def __init__(self) -> None:
        self.speed = 0.0
        self.max_speed = 0.0
        self.acceleration = 0.0
        self.step_interval = 0
        self.direction = Direction.CCW
        self.n = 0
        self.c0 = 0.0
        self.cn = 0.0
        self.cmin = 1.0
        self.set_acceleration(1.0, 0)
        self.set_max_speed(1.0, 0)

    def steps_to_stop(self) -> int:
        """Steps needed to come to rest from the current speed."""
        return int((self.speed * self.speed) / (2.0 * self.acceleration))

    def compute_new_speed(self, distance: int) -> int:
        """Work out the next step interval for ``distance`` steps to go.

        Returns the new step interval in microseconds.
        """
        stopping = self.steps_to_stop()

        if distance == 0 and stopping <= 1:
            self.step_interval = 0
            self.speed = 0.0
            self.n = 0
            return self.step_interval

        if distance > 0:
            if self.n > 0:
                if stopping >= distance or self.direction is Direction.CCW:
                    self.n = -stopping
            elif self.n < 0:
                if stopping < distance and self.direction is Direction.CW:
                    self.n = -self.n
        elif distance < 0:
            if self.n > 0:
                if stopping >= -distance or self.direction is Direction.CW:
                    self.n = -stopping
            elif self.n < 0:
                if stopping < -distance and self.direction is Direction.CCW:
                    self.n = -self.n

        if self.n == 0:
            self.cn = self.c0
            self.direction = Direction.CW if distance > 0 else Direction.CCW
        else:
            self.cn = self.cn - (2.0 * self.cn) / (4.0 * self.n + 1)
            self.cn = max(self.cn, self.cmin)
        self.n += 1
        self.step_interval = int(self.cn)
        self.speed = MICROS_PER_SECOND / self.cn
        if self.direction is Direction.CCW:
            self.speed = -self.speed
        return self.step_interval

    def set_max_speed(self, speed: float, distance: int) -> None:
        """Set the top speed in steps per second; the sign is ignored."""
        speed = abs(speed)
        if speed == 0.0:
            raise ValueError("maximum speed must be greater than zero")
        if self.max_speed != speed:
            self.max_speed = speed
            self.cmin = MICROS_PER_SECOND / speed
            if self.n > 0:
                self.n = self.steps_to_stop()
                self.compute_new_speed(distance)

    def set_acceleration(self, acceleration: float, distance: int) -> None:
        """Set the acceleration in steps per second squared.

        Zero is ignored and the sign is dropped.
        """
        if acceleration == 0.0:
            return
        acceleration = abs(acceleration)
        if self.acceleration != acceleration:
            self.n = int(self.n * (self.acceleration / acceleration))
            self.c0 = _C0_CORRECTION * math.sqrt(2.0 / acceleration) * MICROS_PER_SECOND
            self.acceleration = acceleration
            self.compute_new_speed(distance)

    def set_speed(self, speed: float) -> None:
        """Set a constant speed, limited to plus or minus the top speed."""
        if speed == self.speed:
            return
        speed = min(max(speed, -self.max_speed), self.max_speed)
        if speed == 0.0:
            self.step_interval = 0
        else:
            self.step_interval = int(abs(MICROS_PER_SECOND / speed))
            self.direction = Direction.CW if speed > 0.0 else Direction.CCW
        self.speed = speed

    def reset(self) -> None:
        """Bring the profile to rest."""
        self.n = 0
        self.step_interval = 0
        self.speed = 0.0