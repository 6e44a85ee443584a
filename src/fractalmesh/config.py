"""
Run Configuration
=================
This module holds every input a fractal run needs in one dataclass.

Why is this file needed?
------------------------
1. Defaults: One place for the grid sizes, cut counts, iteration budget and
   global box used when nothing else is given.
2. Persistence: Configurations are plain JSON so a run can be repeated.
3. Validation: Bad inputs (zero cuts, empty boxes, ranks out of range) are
   rejected here, before any worker starts computing.

Exports:
    FractalConfig: The run configuration.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
import json
import logging
from typing import Any, Optional

from fractalmesh.model.bounds import Axis, Bounds

logger = logging.getLogger(__name__)

TRANSPORTS = ("loopback", "mpi")


@dataclass
class FractalConfig:
    # Voxels per subdomain
    nx: int = 16
    ny: int = 16
    nz: int = 16

    # Subdomains along each axis
    nxcuts: int = 4
    nycuts: int = 4
    nzcuts: int = 4

    # Iteration budget per voxel
    nsteps: int = 16

    # Global box; the z range is the exponent range of the map
    xmin: float = -2.0
    ymin: float = -2.0
    zmin: float = 2.0
    xmax: float = 2.0
    ymax: float = 2.0
    zmax: float = 4.0

    # "loopback" for a single process, "mpi" for mpi4py
    transport: str = "loopback"

    # Overrides for the values normally taken from the transport
    rank: Optional[int] = None
    nprocs: Optional[int] = None

    # Outputs
    output_dir: Optional[str] = None
    # HDF5 path templates; "{rank}" is replaced by the rank number
    checkpoint: Optional[str] = None
    resume: Optional[str] = None
    debug: bool = False

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def global_bounds(self) -> Bounds:
        return Bounds(self.xmin, self.ymin, self.zmin, self.xmax, self.ymax, self.zmax)

    @property
    def resolution(self) -> tuple[int, int, int]:
        return (self.nx, self.ny, self.nz)

    @property
    def cuts(self) -> tuple[int, int, int]:
        return (self.nxcuts, self.nycuts, self.nzcuts)

    def validate(self) -> None:
        """
        Raises:
            ValueError: If the configuration cannot produce a valid run.
        """
        for name in ("nx", "ny", "nz", "nxcuts", "nycuts", "nzcuts"):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name} must be >= 1, got {value}.")

        if self.nsteps < 0:
            raise ValueError(f"nsteps must be >= 0, got {self.nsteps}.")

        if self.transport not in TRANSPORTS:
            raise ValueError(f"transport must be one of {TRANSPORTS}, got '{self.transport}'.")

        if self.nprocs is not None and self.nprocs < 1:
            raise ValueError(f"nprocs must be >= 1, got {self.nprocs}.")

        if self.rank is not None:
            if self.rank < 0:
                raise ValueError(f"rank must be >= 0, got {self.rank}.")
            if self.nprocs is not None and self.rank >= self.nprocs:
                raise ValueError(f"rank {self.rank} is out of range for {self.nprocs} processes.")

        bounds = self.global_bounds
        for axis in Axis:
            if not bounds.lo(axis) < bounds.hi(axis):
                name = axis.name.lower()
                raise ValueError(
                    f"{name}min must be smaller than {name}max, got "
                    f"{bounds.lo(axis)} and {bounds.hi(axis)}."
                )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FractalConfig:
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**data)

    @classmethod
    def from_json(cls, filepath: str) -> FractalConfig:
        logger.info(f"Loading configuration from: {filepath}")
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file '{filepath}' must contain a JSON object.")
        return cls.from_dict(data)

    def to_json(self, filepath: str) -> None:
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Configuration saved to: {filepath}")
