"""
Escape-Time Field
=================
A dense 3D escape-time field over one subdomain.

Each voxel holds one complex number (real and imaginary parts interleaved in
``state``) and an iteration counter (``nsteps``). For the voxel at fractional
position ``(rx, ry, rz)`` inside the subdomain the map is

    w <- w ** p + (x + iy)

with ``x = lerp(min_x, max_x, rx)``, ``y = lerp(min_y, max_y, ry)`` and the
real exponent ``p = lerp(min_z, max_z, rz)``. The z axis therefore selects the
exponent, not a spatial coordinate.

The iteration stops for a voxel once ``|w|^2 >= 2.0`` (tested before the
update), so escaped voxels keep their last value and their counter freezes.
"""
from __future__ import annotations

from enum import Enum
import logging
import math
import sys
import time
from typing import TYPE_CHECKING, TextIO

import numba as nb
import numpy as np

from fractalmesh.model.bounds import Axis, Bounds, axis_ratio, lerp

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

BAILOUT = 2.0
DEBUG_MAX_RESOLUTION = 16

STATE_DTYPE = np.float32
NSTEPS_DTYPE = np.uint16


class DebugMode(Enum):
    DATA = "data"
    NSTEPS = "nsteps"


# Compiled once from the same function Bounds.coordinate uses
_lerp = nb.njit(cache=True)(lerp)


@nb.njit(cache=True)
def _complex_power(re: float, im: float, p: float) -> tuple[float, float]:
    """
    Principal-branch power ``(re + i*im) ** p = exp(p * log(re + i*im))``.

    A zero base gives zero for every exponent.
    """
    if re == 0.0 and im == 0.0:
        return 0.0, 0.0
    log_r = math.log(math.hypot(re, im))
    theta = math.atan2(im, re)
    mag = math.exp(p * log_r)
    ang = p * theta
    return mag * math.cos(ang), mag * math.sin(ang)


@nb.njit(cache=True, parallel=True)
def _advance_kernel(
    state: npt.NDArray[np.float32],
    nsteps: npt.NDArray[np.uint16],
    nx: int,
    ny: int,
    nz: int,
    bounds: npt.NDArray[np.float64],
    budget: int,
) -> None:
    """
    Run up to ``budget`` iterations on every voxel, in place.

    Voxels do not depend on each other, so z-slices run in parallel.
    """
    min_x, min_y, min_z = bounds[0], bounds[1], bounds[2]
    max_x, max_y, max_z = bounds[3], bounds[4], bounds[5]

    for k in nb.prange(nz):
        zi = np.int64(k)
        p = _lerp(min_z, max_z, zi / nz)
        zindex = zi * ny * nx
        for yi in range(ny):
            y = _lerp(min_y, max_y, yi / ny)
            yindex = zindex + yi * nx
            for xi in range(nx):
                x = _lerp(min_x, max_x, xi / nx)
                i = yindex + xi
                for _ in range(budget):
                    xd = state[2 * i]
                    yd = state[2 * i + 1]
                    if xd * xd + yd * yd >= BAILOUT:
                        break
                    wr, wi = _complex_power(float(xd), float(yd), p)
                    state[2 * i] = wr + x
                    state[2 * i + 1] = wi + y
                    nsteps[i] += 1


class EscapeTimeField:
    """
    Escape-time state of one subdomain.

    Attributes:
        nx, ny, nz: Voxel counts along each axis.
        bounds: Spatial extent of the subdomain.
        state: (2 * nx * ny * nz,) float32, real/imag interleaved per voxel.
        nsteps: (nx * ny * nz,) uint16 iteration counters.

    Voxel ``(xi, yi, zi)`` lives at linear index ``zi * ny * nx + yi * nx + xi``.
    """
    def __init__(self, nx: int, ny: int, nz: int, bounds: Bounds) -> None:
        if nx < 1 or ny < 1 or nz < 1:
            raise ValueError(f"Field resolution must be positive, got ({nx}, {ny}, {nz}).")

        self.nx = int(nx)
        self.ny = int(ny)
        self.nz = int(nz)
        self.bounds = bounds
        self.state: npt.NDArray[np.float32] = np.zeros(2 * self.n_voxels, dtype=STATE_DTYPE)
        self.nsteps: npt.NDArray[np.uint16] = np.zeros(self.n_voxels, dtype=NSTEPS_DTYPE)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(shape=({self.nx}, {self.ny}, {self.nz}), "
            f"bounds={self.bounds.as_tuple()})"
        )

    @classmethod
    def from_arrays(
        cls,
        nx: int,
        ny: int,
        nz: int,
        bounds: Bounds,
        state: npt.NDArray[np.float32],
        nsteps: npt.NDArray[np.uint16],
    ) -> EscapeTimeField:
        """Rebuild a field from previously saved arrays."""
        field = cls(nx, ny, nz, bounds)
        state = np.asarray(state, dtype=STATE_DTYPE).ravel()
        nsteps = np.asarray(nsteps, dtype=NSTEPS_DTYPE).ravel()
        if state.shape != field.state.shape or nsteps.shape != field.nsteps.shape:
            raise ValueError(
                f"Array sizes {state.shape}, {nsteps.shape} do not match field shape "
                f"({nx}, {ny}, {nz})."
            )
        field.state[:] = state
        field.nsteps[:] = nsteps
        return field

    @property
    def n_voxels(self) -> int:
        return self.nx * self.ny * self.nz

    @property
    def shape(self) -> tuple[int, int, int]:
        return (self.nx, self.ny, self.nz)

    def index(self, xi: int, yi: int, zi: int) -> int:
        """Linear voxel index of ``(xi, yi, zi)``."""
        return zi * self.ny * self.nx + yi * self.nx + xi

    def value(self, xi: int, yi: int, zi: int) -> complex:
        """Current complex value of a voxel."""
        i = self.index(xi, yi, zi)
        return complex(float(self.state[2 * i]), float(self.state[2 * i + 1]))

    def parameters(self) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """
        Per-voxel map parameters in linear voxel order.

        Returns:
            (x, y, p): real offset, imaginary offset and exponent, each of
            shape (nx * ny * nz,).
        """
        zi, yi, xi = np.meshgrid(
            np.arange(self.nz), np.arange(self.ny), np.arange(self.nx), indexing="ij"
        )
        x = self.bounds.coordinate(Axis.X, axis_ratio(xi.ravel(), self.nx))
        y = self.bounds.coordinate(Axis.Y, axis_ratio(yi.ravel(), self.ny))
        p = self.bounds.coordinate(Axis.Z, axis_ratio(zi.ravel(), self.nz))
        return x, y, p

    def magnitude_squared(self) -> npt.NDArray[np.float32]:
        pairs = self.state.reshape(-1, 2)
        return pairs[:, 0] * pairs[:, 0] + pairs[:, 1] * pairs[:, 1]

    def escaped(self) -> npt.NDArray[np.bool_]:
        """Mask of voxels that will not iterate any further."""
        return self.magnitude_squared() >= BAILOUT

    def advance(self, budget: int) -> None:
        """
        Advance every voxel by at most ``budget`` iterations.

        Calls accumulate: ``advance(a)`` followed by ``advance(b)`` ends in the
        same state as ``advance(a + b)``.
        """
        if budget < 0:
            raise ValueError(f"Iteration budget must be non-negative, got {budget}.")
        if budget == 0:
            return

        start = time.perf_counter()
        _advance_kernel(
            self.state,
            self.nsteps,
            self.nx,
            self.ny,
            self.nz,
            np.asarray(self.bounds.as_tuple(), dtype=np.float64),
            int(budget),
        )
        elapsed = time.perf_counter() - start

        non_finite = int(np.count_nonzero(~np.isfinite(self.state.reshape(-1, 2)).all(axis=1)))
        if non_finite:
            logger.warning(f"{non_finite} of {self.n_voxels} voxels hold non-finite values in {self!r}.")

        logger.debug(f"Advanced {self!r} by {budget} steps in {elapsed:.4f}s.")

    def format_debug(self, mode: DebugMode) -> str:
        """
        ASCII dump of the field, one block per z-slice and one line per row.

        Returns an empty string when any axis has more than 16 voxels.
        """
        if max(self.nx, self.ny, self.nz) > DEBUG_MAX_RESOLUTION:
            return ""

        lines = []
        for zi in range(self.nz):
            for yi in range(self.ny):
                prefix = "[ [" if yi == 0 else "  ["
                suffix = " ] ]" if yi == self.ny - 1 else " ]"
                entries = []
                for xi in range(self.nx):
                    i = self.index(xi, yi, zi)
                    if mode is DebugMode.DATA:
                        entries.append(f" {self.state[2 * i]:+0.2f}{self.state[2 * i + 1]:+0.2f}i")
                    else:
                        entries.append(f" {int(self.nsteps[i]):03d}")
                lines.append(prefix + "".join(entries) + suffix)
            lines.append("")
        return "\n".join(lines)

    def debug(self, mode: DebugMode = DebugMode.NSTEPS, stream: TextIO | None = None) -> None:
        """Write :meth:`format_debug` output to ``stream`` (stderr by default)."""
        text = self.format_debug(mode)
        if not text:
            return
        stream = stream if stream is not None else sys.stderr
        stream.write(text + "\n")
        stream.flush()
