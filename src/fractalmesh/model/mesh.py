"""
Mesh Accumulator
================
A growing hexahedral mesh owned by a single rank.

Subdomains are appended one after another. Points are never shared between
voxels: every hexahedron brings its own 8 points, so blocks appended by
different subdomains stay independent and can be added in any order.

Appended blocks are queued and joined into the point and cell arrays the next
time those arrays are read, so appending many subdomains stays linear.

The accumulator is converted to a ``pyvista.UnstructuredGrid`` when it is
handed to redistribution or rendering code.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
import pyvista as pv

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

POINTS_PER_CELL = 8
SCALAR_NAME = "nsteps"


class MeshAccumulator:
    """
    Attributes:
        points: (N, 3) float64 point coordinates, in insertion order.
        cells: (K, 8) int64 point indices, one row per hexahedron.
        cell_type: VTK cell type shared by every cell.
        cell_data: Named per-cell arrays, each of length K.
        active_scalars: Name of the array used for coloring.
    """
    def __init__(self, scalar_name: str = SCALAR_NAME) -> None:
        self._points: npt.NDArray[np.float64] = np.empty((0, 3), dtype=np.float64)
        self._cells: npt.NDArray[np.int64] = np.empty((0, POINTS_PER_CELL), dtype=np.int64)
        self._cell_data: dict[str, npt.NDArray] = {scalar_name: np.empty(0, dtype=np.uint16)}
        self.cell_type = pv.CellType.HEXAHEDRON
        self.active_scalars = scalar_name

        # (points, offset cells, scalars) waiting to be joined
        self._pending: list[tuple[npt.NDArray, npt.NDArray, npt.NDArray]] = []
        self._n_points = 0
        self._n_cells = 0

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(n_points={self.n_points}, n_cells={self.n_cells})"

    @property
    def points(self) -> npt.NDArray[np.float64]:
        self._consolidate()
        return self._points

    @property
    def cells(self) -> npt.NDArray[np.int64]:
        self._consolidate()
        return self._cells

    @property
    def cell_data(self) -> dict[str, npt.NDArray]:
        self._consolidate()
        return self._cell_data

    @property
    def n_points(self) -> int:
        return self._n_points

    @property
    def n_cells(self) -> int:
        return self._n_cells

    @property
    def scalars(self) -> npt.NDArray:
        """The active per-cell scalar array."""
        return self.cell_data[self.active_scalars]

    def append_block(
        self,
        points: npt.NDArray[np.float64],
        local_cells: npt.NDArray[np.int64],
        scalars: npt.NDArray,
    ) -> None:
        """
        Append a self-contained block of points and cells.

        Args:
            points: (M, 3) coordinates of the new points.
            local_cells: (C, 8) indices into ``points`` (block-local, 0-based).
            scalars: (C,) values for the active scalar array.
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        local_cells = np.asarray(local_cells, dtype=np.int64).reshape(-1, POINTS_PER_CELL)
        scalars = np.asarray(scalars).ravel()

        if len(scalars) != len(local_cells):
            raise ValueError(f"Got {len(scalars)} scalars for {len(local_cells)} cells.")
        if local_cells.size and (local_cells.min() < 0 or local_cells.max() >= len(points)):
            raise IndexError("Cell connectivity references points outside the appended block.")

        dtype = self._cell_data[self.active_scalars].dtype
        self._pending.append((points, local_cells + self._n_points, scalars.astype(dtype)))
        self._n_points += len(points)
        self._n_cells += len(local_cells)

    def _consolidate(self) -> None:
        """Join queued blocks into the point, cell and scalar arrays."""
        if not self._pending:
            return

        points, cells, scalars = zip(*self._pending)
        self._points = np.concatenate([self._points, *points])
        self._cells = np.concatenate([self._cells, *cells])

        name = self.active_scalars
        self._cell_data[name] = np.concatenate([self._cell_data[name], *scalars])
        self._pending.clear()

    def to_pyvista(self) -> pv.UnstructuredGrid:
        """Build an unstructured grid with the active scalars set."""
        if self.n_cells == 0:
            return pv.UnstructuredGrid()

        grid = pv.UnstructuredGrid({self.cell_type: self.cells}, self.points)
        for name, values in self.cell_data.items():
            grid.cell_data[name] = values
        grid.set_active_scalars(self.active_scalars, preference="cell")
        return grid

    def welded(self, decimals: int = 6) -> MeshAccumulator:
        """
        Return a copy where points that coincide after rounding to ``decimals``
        are merged. Cell order and cell data are preserved.
        """
        keys = np.round(self.points, decimals)
        unique_keys, first_index, inverse = np.unique(
            keys, axis=0, return_index=True, return_inverse=True
        )
        inverse = np.asarray(inverse).ravel()

        # Keep the first-seen point order so welding is stable
        order = np.argsort(first_index)
        remap = np.empty_like(order)
        remap[order] = np.arange(len(order))

        welded = MeshAccumulator(self.active_scalars)
        welded.append_block(self.points[first_index[order]], remap[inverse][self.cells], self.scalars)
        for name, values in self.cell_data.items():
            if name != self.active_scalars:
                welded.cell_data[name] = values.copy()

        logger.debug(f"Welded {self.n_points} points down to {len(unique_keys)}.")
        return welded
