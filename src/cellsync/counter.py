"""Bounded counter over a Cell."""

from __future__ import annotations

import logging
import math

from cellsync.cell import Cell
from cellsync.derived import Derived

logger = logging.getLogger(__name__)


class Counter:
    """A number that moves in steps within [minimum, maximum].

    Out-of-bounds moves are refused with a warning; the count is unchanged.
    """

    def __init__(
        self,
        initial: float = 0,
        *,
        minimum: float = -math.inf,
        maximum: float = math.inf,
        step: float = 1,
    ) -> None:
        if minimum > maximum:
            raise ValueError(f"minimum {minimum} is greater than maximum {maximum}")
        if not minimum <= initial <= maximum:
            raise ValueError(f"initial value {initial} outside bounds [{minimum}, {maximum}]")
        self.initial = initial
        self.minimum = minimum
        self.maximum = maximum
        self.step = step
        self.count: Cell[float] = Cell(initial)
        self.can_increment = Derived(lambda: self.count.get() + step <= maximum, self.count)
        self.can_decrement = Derived(lambda: self.count.get() - step >= minimum, self.count)
        self.is_at_min = Derived(lambda: self.count.get() == minimum, self.count)
        self.is_at_max = Derived(lambda: self.count.get() == maximum, self.count)

    def get(self) -> float:
        return self.count.get()

    def increment(self) -> None:
        if self.can_increment.get():
            self.count.set(self.count.get() + self.step)
        else:
            logger.warning("Cannot increment: would exceed maximum of %s", self.maximum)

    def decrement(self) -> None:
        if self.can_decrement.get():
            self.count.set(self.count.get() - self.step)
        else:
            logger.warning("Cannot decrement: would go below minimum of %s", self.minimum)

    def reset(self) -> None:
        self.count.set(self.initial)

    def set(self, value: float) -> None:
        if self.minimum <= value <= self.maximum:
            self.count.set(value)
        else:
            logger.warning(
                "Cannot set counter to %s: outside bounds [%s, %s]", value, self.minimum, self.maximum
            )

    def __repr__(self) -> str:
        return f"Counter({self.count.get()!r}, [{self.minimum}, {self.maximum}])"
