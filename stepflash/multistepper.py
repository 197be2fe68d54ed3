"""Several steppers moved together so that they all arrive at the same time."""

from __future__ import annotations

from collections.abc import Sequence

from stepflash.stepper import AccelStepper

MAX_STEPPERS = 10


class MultiStepper:
    """Co-ordinates up to ten steppers at constant speed.

    Each stepper gets its own speed so that all of them reach their targets
    together.  Acceleration is not used.
    """

    def __init__(self) -> None:
        self._steppers: list[AccelStepper] = []

    @property
    def steppers(self) -> tuple[AccelStepper, ...]:
        """The managed steppers, in the order they were added."""
        return tuple(self._steppers)

    def add_stepper(self, stepper: AccelStepper) -> None:
        """Add ``stepper`` to the managed set.

        Raises ValueError once the set already holds the maximum number.
        """
        if len(self._steppers) >= MAX_STEPPERS:
            raise ValueError(f"at most {MAX_STEPPERS} steppers can be managed")
        self._steppers.append(stepper)

    def move_to(self, positions: Sequence[int]) -> None:
        """Set absolute targets, one per stepper in the order they were added.

        Speeds are chosen so that every stepper needs the same time as the
        slowest one.  Extra positions are ignored; too few raise ValueError.
        """
        if len(positions) < len(self._steppers):
            raise ValueError(
                f"{len(self._steppers)} positions needed, {len(positions)} given"
            )
        moves = [
            (stepper, target, target - stepper.current_position())
            for stepper, target in zip(self._steppers, positions)
        ]
        longest = max(
            (abs(distance) / stepper.max_speed() for stepper, _, distance in moves),
            default=0.0,
        )
        if longest <= 0.0:
            return
        for stepper, target, distance in moves:
            stepper.move_to(target)
            stepper.set_speed(distance / longest)

    def run(self) -> bool:
        """Step every stepper that is not yet at its target, if a step is due.

        Returns True while any stepper still has distance to go.
        """
        moving = False
        for stepper in self._steppers:
            if stepper.distance_to_go() != 0:
                stepper.run_speed()
                moving = True
        return moving

    def run_speed_to_position(self) -> None:
        """Run all steppers until each has reached its target; blocks."""
        while self.run():
            pass