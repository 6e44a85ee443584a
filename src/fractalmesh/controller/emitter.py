"""
Mesh Emitter
============
Turns escape-time fields into hexahedral mesh geometry.

Every voxel becomes one hexahedron with 8 fresh points (no sharing with its
neighbours) and carries its iteration count as the ``nsteps`` cell scalar.
Corners follow the VTK hexahedron ordering: bottom face counter-clockwise,
then top face counter-clockwise.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Optional

import numpy as np

from fractalmesh.model.bounds import Axis, DegenerateBoundsError, axis_ratio
from fractalmesh.model.mesh import POINTS_PER_CELL, MeshAccumulator

if TYPE_CHECKING:
    import numpy.typing as npt
    from fractalmesh.model.field import EscapeTimeField

logger = logging.getLogger(__name__)

# (x, y, z) corner selectors, 0 = low edge, 1 = high edge
HEX_CORNERS: tuple[tuple[int, int, int], ...] = (
    (0, 0, 0),
    (1, 0, 0),
    (1, 1, 0),
    (0, 1, 0),
    (0, 0, 1),
    (1, 0, 1),
    (1, 1, 1),
    (0, 1, 1),
)


class MeshEmitter:
    @staticmethod
    def voxel_edges(field: EscapeTimeField) -> tuple[npt.NDArray[np.float64], ...]:
        """
        Low/high voxel edges along each axis, in linear voxel order.

        Returns:
            (x0, x1, y0, y1, z0, z1), each of shape (nx * ny * nz,).

        Raises:
            DegenerateBoundsError: If any voxel has a low edge >= its high edge.
        """
        zi, yi, xi = np.meshgrid(
            np.arange(field.nz), np.arange(field.ny), np.arange(field.nx), indexing="ij"
        )
        edges = []
        for axis, index, n in ((Axis.X, xi.ravel(), field.nx), (Axis.Y, yi.ravel(), field.ny), (Axis.Z, zi.ravel(), field.nz)):
            lo = field.bounds.coordinate(axis, axis_ratio(index, n))
            hi = field.bounds.coordinate(axis, axis_ratio(index + 1, n))
            if not np.all(lo < hi):
                raise DegenerateBoundsError(
                    f"Voxel edges along {axis.name} are not increasing for bounds {field.bounds.as_tuple()}."
                )
            edges.extend([lo, hi])
        return tuple(edges)

    @staticmethod
    def hexahedron_points(field: EscapeTimeField) -> npt.NDArray[np.float64]:
        """(nx * ny * nz * 8, 3) corner coordinates, 8 consecutive rows per voxel."""
        x0, x1, y0, y1, z0, z1 = MeshEmitter.voxel_edges(field)
        xs = np.stack([x0, x1], axis=1)
        ys = np.stack([y0, y1], axis=1)
        zs = np.stack([z0, z1], axis=1)

        points = np.empty((field.n_voxels, POINTS_PER_CELL, 3), dtype=np.float64)
        for corner, (a, b, c) in enumerate(HEX_CORNERS):
            points[:, corner, 0] = xs[:, a]
            points[:, corner, 1] = ys[:, b]
            points[:, corner, 2] = zs[:, c]
        return points.reshape(-1, 3)

    def emit(self, field: EscapeTimeField, accumulator: Optional[MeshAccumulator] = None) -> MeshAccumulator:
        """
        Append one hexahedron per voxel of ``field`` to ``accumulator``.

        Args:
            field: The field to convert.
            accumulator: Mesh to append to. A new one is created if None.

        Returns:
            The accumulator that received the cells.
        """
        if accumulator is None:
            accumulator = MeshAccumulator()

        points = self.hexahedron_points(field)
        local_cells = np.arange(len(points), dtype=np.int64).reshape(-1, POINTS_PER_CELL)
        accumulator.append_block(points, local_cells, field.nsteps)

        logger.debug(f"Emitted {field.n_voxels} cells from {field!r}; mesh now {accumulator!r}.")
        return accumulator

    def emit_all(self, fields: Iterable[EscapeTimeField], accumulator: Optional[MeshAccumulator] = None) -> MeshAccumulator:
        """Fold several fields into one accumulator."""
        if accumulator is None:
            accumulator = MeshAccumulator()
        for field in fields:
            accumulator = self.emit(field, accumulator)
        return accumulator
