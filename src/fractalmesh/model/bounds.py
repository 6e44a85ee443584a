"""
Bounds Math
===========
Axis-aligned boxes and the interpolation helpers that map grid indices to
coordinates inside them.

Two interpolation conventions exist for the same mapping:

    lerp(lo, hi, r)          = lo + r * (hi - lo)
    reversed_lerp(lo, hi, r) = lo * r + hi * (1 - r)

They are NOT equivalent (the second runs from ``hi`` to ``lo`` as ``r`` grows).
Every coordinate in this package is computed with :func:`lerp`;
:func:`reversed_lerp` is kept for comparing against output produced with the
other convention.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Union

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt

ArrayOrFloat = Union[float, "npt.NDArray[np.float64]"]


class DegenerateBoundsError(ValueError):
    """Raised when a box has ``lo >= hi`` on some axis."""


class Axis(IntEnum):
    X = 0
    Y = 1
    Z = 2


def axis_ratio(index: ArrayOrFloat, resolution: int) -> ArrayOrFloat:
    """Fractional position of ``index`` along an axis of ``resolution`` cells."""
    return index / resolution


def lerp(lo: float, hi: float, ratio: ArrayOrFloat) -> ArrayOrFloat:
    """Standard linear interpolation, ``lo`` at ratio 0 and ``hi`` at ratio 1."""
    return lo + ratio * (hi - lo)


def reversed_lerp(lo: float, hi: float, ratio: ArrayOrFloat) -> ArrayOrFloat:
    """Alternate convention, ``hi`` at ratio 0 and ``lo`` at ratio 1."""
    return lo * ratio + hi * (1 - ratio)


@dataclass(frozen=True)
class Bounds:
    """
    An axis-aligned box stored as (min_x, min_y, min_z, max_x, max_y, max_z).
    """
    min_x: float
    min_y: float
    min_z: float
    max_x: float
    max_y: float
    max_z: float

    @classmethod
    def from_tuple(cls, values) -> Bounds:
        values = tuple(float(v) for v in values)
        if len(values) != 6:
            raise ValueError(f"Expected 6 bound values, got {len(values)}.")
        return cls(*values)

    def as_tuple(self) -> tuple[float, float, float, float, float, float]:
        return (self.min_x, self.min_y, self.min_z, self.max_x, self.max_y, self.max_z)

    def lo(self, axis: Axis) -> float:
        return self.as_tuple()[axis]

    def hi(self, axis: Axis) -> float:
        return self.as_tuple()[axis + 3]

    def span(self, axis: Axis) -> float:
        return self.hi(axis) - self.lo(axis)

    def coordinate(self, axis: Axis, ratio: ArrayOrFloat) -> ArrayOrFloat:
        """Map a ratio in [0, 1] to a coordinate along ``axis``."""
        return lerp(self.lo(axis), self.hi(axis), ratio)

    def is_monotonic(self) -> bool:
        return all(self.lo(axis) < self.hi(axis) for axis in Axis)

    def check_monotonic(self) -> None:
        """
        Raises:
            DegenerateBoundsError: If ``lo >= hi`` on any axis.
        """
        for axis in Axis:
            if not self.lo(axis) < self.hi(axis):
                raise DegenerateBoundsError(
                    f"Bounds {self.as_tuple()} are degenerate along {axis.name}: "
                    f"{self.lo(axis)} >= {self.hi(axis)}."
                )

    def subdivide(self, cuts: tuple[int, int, int], index: tuple[int, int, int]) -> Bounds:
        """
        Return the sub-box at ``index`` of a uniform ``cuts`` subdivision.

        Along each axis, cell ``k`` of ``n`` spans
        ``[min + (max - min) / n * k, min + (max - min) / n * (k + 1)]``.
        """
        lows = []
        highs = []
        for axis in Axis:
            n = cuts[axis]
            k = index[axis]
            step = self.span(axis) / n
            lows.append(self.lo(axis) + step * k)
            highs.append(self.lo(axis) + step * (k + 1))
        return Bounds(*lows, *highs)
