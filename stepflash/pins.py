"""Motor wiring: interface types, coil phase patterns and output pin control."""

from __future__ import annotations

import abc
from collections.abc import Sequence
from enum import IntEnum

OUTPUT = "output"
HIGH = True
LOW = False

UNUSED_PIN = 0xFF


class MotorInterface(IntEnum):
    """How a motor is wired; the value is the number used to select it."""

    FUNCTION = 0
    DRIVER = 1
    FULL2WIRE = 2
    FULL3WIRE = 3
    FULL4WIRE = 4
    HALF3WIRE = 6
    HALF4WIRE = 8


class Gpio(abc.ABC):
    """Digital output lines that a motor is connected to."""

    @abc.abstractmethod
    def pin_mode(self, pin: int, mode: str) -> None:
        """Configure ``pin`` for ``mode``."""

    @abc.abstractmethod
    def digital_write(self, pin: int, value: bool) -> None:
        """Drive ``pin`` high (True) or low (False)."""


class RecordingGpio(Gpio):
    """A Gpio that remembers every mode change and write it receives."""

    def __init__(self) -> None:
        self.modes: dict[int, str] = {}
        self.levels: dict[int, bool] = {}
        self.writes: list[tuple[int, bool]] = []

    def pin_mode(self, pin: int, mode: str) -> None:
        self.modes[pin] = mode

    def digital_write(self, pin: int, value: bool) -> None:
        value = bool(value)
        self.levels[pin] = value
        self.writes.append((pin, value))


_PHASES: dict[MotorInterface, tuple[int, ...]] = {
    MotorInterface.FULL2WIRE: (0b10, 0b11, 0b01, 0b00),
    MotorInterface.FULL3WIRE: (0b100, 0b001, 0b010),
    MotorInterface.FULL4WIRE: (0b0101, 0b0110, 0b1010, 0b1001),
    MotorInterface.HALF3WIRE: (0b100, 0b101, 0b001, 0b011, 0b010, 0b110),
    MotorInterface.HALF4WIRE: (
        0b0001, 0b0101, 0b0100, 0b0110, 0b0010, 0b1010, 0b1000, 0b1001,
    ),
}


def phase_mask(interface: int, step: int) -> int | None:
    """Return the output pin mask for position ``step`` on a coil-driven motor.

    Interfaces with a power-of-two phase count wrap negative steps around.
    The three-wire interfaces take a truncated remainder, so a negative step
    that is not a multiple of the phase count has no phase and gives None.
    Raises ValueError for interfaces that are not driven by phase patterns.
    """
    kind = MotorInterface(interface)
    try:
        phases = _PHASES[kind]
    except KeyError:
        raise ValueError(f"{kind.name} has no coil phase sequence") from None
    count = len(phases)
    if count & (count - 1) == 0:
        return phases[step & (count - 1)]
    if step < 0 and (-step) % count:
        return None
    return phases[abs(step) % count]


class PinDriver:
    """Drives the output pins and the optional enable pin of one motor."""

    def __init__(self, interface: int, pins: Sequence[int], gpio: Gpio) -> None:
        self.interface = MotorInterface(interface)
        if len(pins) > 4:
            raise ValueError("a motor uses at most 4 pins")
        self.pins: list[int] = list(pins) + [0] * (4 - len(pins))
        self.gpio = gpio
        self.inverted: list[bool] = [False] * 4
        self.enable_inverted = False
        self.enable_pin: int | None = None

    def pin_count(self) -> int:
        """Number of motor pins the interface drives."""
        if self.interface in (MotorInterface.FULL4WIRE, MotorInterface.HALF4WIRE):
            return 4
        if self.interface in (MotorInterface.FULL3WIRE, MotorInterface.HALF3WIRE):
            return 3
        return 2

    def set_output_pins(self, mask: int) -> None:
        """Drive the motor pins; bit ``i`` of ``mask`` goes to pin ``i``."""
        for index, (pin, inverted) in enumerate(
            zip(self.pins[: self.pin_count()], self.inverted)
        ):
            level = bool(mask & (1 << index))
            self.gpio.digital_write(pin, level ^ inverted)

    def _drive_enable(self, level: bool) -> None:
        if self.enable_pin is not None:
            self.gpio.pin_mode(self.enable_pin, OUTPUT)
            self.gpio.digital_write(self.enable_pin, level ^ self.enable_inverted)

    def enable_outputs(self) -> None:
        """Make the motor pins outputs and assert the enable pin, if any."""
        if self.interface is MotorInterface.FUNCTION:
            return
        for pin in self.pins[: self.pin_count()]:
            self.gpio.pin_mode(pin, OUTPUT)
        self._drive_enable(HIGH)

    def disable_outputs(self) -> None:
        """Drive all motor pins low and release the enable pin, if any."""
        if self.interface is MotorInterface.FUNCTION:
            return
        self.set_output_pins(0)
        self._drive_enable(LOW)

    def set_enable_pin(self, enable_pin: int | None = None) -> None:
        """Set the enable pin (None or 0xFF for none) and assert it at once."""
        self.enable_pin = None if enable_pin in (None, UNUSED_PIN) else enable_pin
        self._drive_enable(HIGH)

    def set_pins_inverted(
        self,
        direction_invert: bool = False,
        step_invert: bool = False,
        enable_invert: bool = False,
    ) -> None:
        """Set inversion for a step/direction driver's pins."""
        self.inverted[0] = bool(step_invert)
        self.inverted[1] = bool(direction_invert)
        self.enable_inverted = bool(enable_invert)

    def set_pin_inversions(
        self,
        pin1_invert: bool,
        pin2_invert: bool,
        pin3_invert: bool,
        pin4_invert: bool,
        enable_invert: bool,
    ) -> None:
        """Set inversion for each of the four motor pins and the enable pin."""
        self.inverted = [
            bool(pin1_invert),
            bool(pin2_invert),
            bool(pin3_invert),
            bool(pin4_invert),
        ]
        self.enable_inverted = bool(enable_invert)