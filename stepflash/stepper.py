"""A stepper motor with acceleration, deceleration and absolute positioning."""

from __future__ import annotations

import time
from collections.abc import Callable

from stepflash.pins import Gpio, MotorInterface, PinDriver, RecordingGpio, phase_mask
from stepflash.profile import Direction, SpeedProfile


def _monotonic_micros() -> int:
    return time.monotonic_ns() // 1000


def _sleep_micros(micros: int) -> None:
    if micros > 0:
        time.sleep(micros / 1_000_000)


class AccelStepper:
    """One stepper motor, stepped by polling :meth:`run` or :meth:`run_speed`.

    Positions are whole steps; positive is clockwise.  ``clock`` returns the
    current time in microseconds.  When ``forward`` and ``backward`` are
    given, the motor is driven through those callables instead of pins.
    Without a ``gpio`` the pin levels are kept in a :class:`RecordingGpio`.
    """

    def __init__(
        self,
        interface: int = MotorInterface.FULL4WIRE,
        pin1: int = 2,
        pin2: int = 3,
        pin3: int = 4,
        pin4: int = 5,
        enable: bool = True,
        gpio: Gpio | None = None,
        clock: Callable[[], int] | None = None,
        forward: Callable[[], None] | None = None,
        backward: Callable[[], None] | None = None,
    ) -> None:
        if forward is not None or backward is not None:
            if forward is None or backward is None:
                raise ValueError("both forward and backward step functions are needed")
            interface = MotorInterface.FUNCTION
            pins: tuple[int, ...] = (0, 0, 0, 0)
        else:
            if MotorInterface(interface) is MotorInterface.FUNCTION:
                raise ValueError("the FUNCTION interface needs forward and backward step functions")
            pins = (pin1, pin2, pin3, pin4)
        self._forward = forward
        self._backward = backward
        self._clock = clock if clock is not None else _monotonic_micros
        self._delay: Callable[[int], None] = _sleep_micros
        self._driver = PinDriver(interface, pins, gpio if gpio is not None else RecordingGpio())
        self._current_pos = 0
        self._target_pos = 0
        self._last_step_time = 0
        self._min_pulse_width = 1
        self._profile = SpeedProfile()
        if enable and self._driver.interface is not MotorInterface.FUNCTION:
            self.enable_outputs()

    @property
    def interface(self) -> MotorInterface:
        """How the motor is wired."""
        return self._driver.interface

    @property
    def direction(self) -> Direction:
        """The direction the motor is currently turning."""
        return self._profile.direction

    @property
    def step_interval(self) -> int:
        """Microseconds between steps; zero when stopped."""
        return self._profile.step_interval

    def move_to(self, absolute: int) -> None:
        """Set the absolute target position and recompute the next step."""
        if self._target_pos != absolute:
            self._target_pos = absolute
            self._profile.compute_new_speed(self.distance_to_go())

    def move(self, relative: int) -> None:
        """Set the target relative to the current position."""
        self.move_to(self._current_pos + relative)

    def run_speed(self) -> bool:
        """Take one step if one is due at the current speed; True if stepped."""
        interval = self._profile.step_interval
        if not interval:
            return False
        now = self._clock()
        if now - self._last_step_time < interval:
            return False
        if self._profile.direction is Direction.CW:
            self._current_pos += 1
        else:
            self._current_pos -= 1
        self.step(self._current_pos)
        self._last_step_time = now
        return True

    def run(self) -> bool:
        """Step if due, with acceleration; True while still heading to the target."""
        if self.run_speed():
            self._profile.compute_new_speed(self.distance_to_go())
        return self._profile.speed != 0.0 or self.distance_to_go() != 0

    def set_max_speed(self, speed: float) -> None:
        """Set the top speed in steps per second; the sign is ignored."""
        self._profile.set_max_speed(speed, self.distance_to_go())

    def set_acceleration(self, acceleration: float) -> None:
        """Set the acceleration in steps per second squared; zero is ignored."""
        self._profile.set_acceleration(acceleration, self.distance_to_go())

    def set_speed(self, speed: float) -> None:
        """Set a constant speed for :meth:`run_speed`, limited by the top speed."""
        self._profile.set_speed(speed)

    def speed(self) -> float:
        """The current speed in steps per second; positive is clockwise."""
        return self._profile.speed

    def max_speed(self) -> float:
        """The configured top speed."""
        return self._profile.max_speed

    def acceleration(self) -> float:
        """The configured acceleration."""
        return self._profile.acceleration

    def current_position(self) -> int:
        """The current position in steps."""
        return self._current_pos

    def target_position(self) -> int:
        """The most recently set target position."""
        return self._target_pos

    def distance_to_go(self) -> int:
        """Steps from the current position to the target; positive is clockwise."""
        return self._target_pos - self._current_pos

    def set_current_position(self, position: int) -> None:
        """Declare the motor to be at ``position``; also stops it."""
        self._target_pos = self._current_pos = position
        self._profile.reset()

    def step(self, step: int) -> None:
        """Drive the outputs for step number ``step``."""
        kind = self._driver.interface
        if kind is MotorInterface.FUNCTION:
            self._step_function()
        elif kind is MotorInterface.DRIVER:
            self._step_driver()
        else:
            mask = phase_mask(kind, step)
            if mask is not None:
                self._driver.set_output_pins(mask)

    def _step_function(self) -> None:
        if self._profile.speed > 0:
            self._forward()
        else:
            self._backward()

    def _step_driver(self) -> None:
        clockwise = self._profile.direction is Direction.CW
        # Direction goes first so the step pulse never sees a stale direction.
        self._driver.set_output_pins(0b10 if clockwise else 0b00)
        self._driver.set_output_pins(0b11 if clockwise else 0b01)
        self._delay(self._min_pulse_width)
        self._driver.set_output_pins(0b10 if clockwise else 0b00)

    def step_forward(self) -> int:
        """Take one clockwise step now; return the new position."""
        self._current_pos += 1
        self.step(self._current_pos)
        self._last_step_time = self._clock()
        return self._current_pos

    def step_backward(self) -> int:
        """Take one anticlockwise step now; return the new position."""
        self._current_pos -= 1
        self.step(self._current_pos)
        self._last_step_time = self._clock()
        return self._current_pos

    def enable_outputs(self) -> None:
        """Set the motor pins to outputs and assert the enable pin."""
        self._driver.enable_outputs()

    def disable_outputs(self) -> None:
        """Drive the motor pins low and release the enable pin."""
        self._driver.disable_outputs()

    def set_min_pulse_width(self, min_width: int) -> None:
        """Set the step pulse width in microseconds for driver boards."""
        if min_width < 0:
            raise ValueError("pulse width cannot be negative")
        self._min_pulse_width = min_width

    def set_enable_pin(self, enable_pin: int | None = None) -> None:
        """Set the enable pin (None or 0xFF for none) and assert it."""
        self._driver.set_enable_pin(enable_pin)

    def set_pins_inverted(
        self,
        direction_invert: bool = False,
        step_invert: bool = False,
        enable_invert: bool = False,
    ) -> None:
        """Set inversion of a driver board's direction, step and enable pins."""
        self._driver.set_pins_inverted(direction_invert, step_invert, enable_invert)

    def set_pin_inversions(
        self,
        pin1_invert: bool,
        pin2_invert: bool,
        pin3_invert: bool,
        pin4_invert: bool,
        enable_invert: bool,
    ) -> None:
        """Set inversion of each motor pin and the enable pin."""
        self._driver.set_pin_inversions(
            pin1_invert, pin2_invert, pin3_invert, pin4_invert, enable_invert
        )

    def run_to_position(self) -> None:
        """Run with acceleration until the target is reached; blocks."""
        while self.run():
            pass

    def run_speed_to_position(self) -> bool:
        """Step at constant speed towards the target; True if a step was taken."""
        if self._target_pos == self._current_pos:
            return False
        self._profile.direction = (
            Direction.CW if self._target_pos > self._current_pos else Direction.CCW
        )
        return self.run_speed()

    def run_to_new_position(self, position: int) -> None:
        """Set a new target and run until it is reached; blocks."""
        self.move_to(position)
        self.run_to_position()

    def stop(self) -> None:
        """Retarget so the motor stops as fast as the acceleration allows."""
        speed = self._profile.speed
        if speed != 0.0:
            steps = self._profile.steps_to_stop() + 1
            self.move(steps if speed > 0 else -steps)

    def is_running(self) -> bool:
        """True unless stopped at the target."""
        return not (self._profile.speed == 0.0 and self._target_pos == self._current_pos)