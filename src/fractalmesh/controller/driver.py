"""
Rank Driver
===========
Runs one rank's share of a fractal job.

Pipeline:
1. Partition the global box (identical on every rank, no communication).
2. Build one escape-time field per subdomain this rank owns.
3. Advance every field by the configured iteration budget.
4. Fold all fields into one rank-local hexahedral mesh.
5. Optionally checkpoint the fields and export the mesh.

The resulting mesh is what gets handed to redistribution or rendering code.
"""
from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
import logging
import sys
import time
from typing import TextIO

import numpy as np

from fractalmesh.config import FractalConfig
from fractalmesh.controller.emitter import MeshEmitter
from fractalmesh.controller.transport import Transport
from fractalmesh.model.field import DebugMode, EscapeTimeField
from fractalmesh.model.io import IOManager
from fractalmesh.model.mesh import MeshAccumulator
from fractalmesh.model.partition import DomainPartitioner, Subdomain

logger = logging.getLogger(__name__)


@dataclass
class RankResult:
    """Everything one rank produced."""
    rank: int
    subdomains: list[Subdomain]
    fields: list[EscapeTimeField]
    mesh: MeshAccumulator
    files: list[str] = dataclass_field(default_factory=list)


class RankDriver:
    def __init__(self, config: FractalConfig, transport: Transport) -> None:
        config.validate()
        self.config = config
        self.transport = transport

        # Explicit overrides win over what the process group reports
        self.rank = config.rank if config.rank is not None else transport.rank
        self.nprocs = config.nprocs if config.nprocs is not None else transport.world_size
        if not 0 <= self.rank < self.nprocs:
            raise ValueError(f"rank {self.rank} is out of range for {self.nprocs} processes.")

        self.partitioner = DomainPartitioner(*config.cuts, nprocs=self.nprocs)
        self.emitter = MeshEmitter()

    def owned_subdomains(self) -> list[Subdomain]:
        return self.partitioner.owned_by(self.rank)

    def build_fields(self) -> tuple[list[Subdomain], list[EscapeTimeField]]:
        """
        One field per owned subdomain, in global subdomain order.

        Fields start zeroed, or from the rank's checkpoint when
        ``config.resume`` is set.
        """
        subdomains = self.owned_subdomains()
        global_bounds = self.config.global_bounds

        fields = []
        for subdomain in subdomains:
            bounds = self.partitioner.bounds_for(subdomain, global_bounds)
            bounds.check_monotonic()
            fields.append(EscapeTimeField(*self.config.resolution, bounds=bounds))

        if self.config.resume:
            fields = self._resume(fields)

        logger.info(f"Rank {self.rank}: {len(fields)} of {self.partitioner.total} subdomains assigned.")
        return subdomains, fields

    def _resume(self, fresh: list[EscapeTimeField]) -> list[EscapeTimeField]:
        path = self.config.resume.format(rank=self.rank)
        loaded = IOManager.load_fields(path)

        if len(loaded) != len(fresh):
            raise ValueError(
                f"Checkpoint '{path}' holds {len(loaded)} fields, rank {self.rank} owns {len(fresh)}."
            )
        for old, new in zip(loaded, fresh):
            if old.shape != new.shape or not np.allclose(old.bounds.as_tuple(), new.bounds.as_tuple()):
                raise ValueError(f"Checkpoint '{path}' does not match the current partition: {old!r} vs {new!r}.")

        logger.info(f"Rank {self.rank}: resumed {len(loaded)} fields from {path}.")
        return loaded

    def advance(self, fields: list[EscapeTimeField]) -> None:
        start = time.perf_counter()
        for f in fields:
            f.advance(self.config.nsteps)
        logger.info(
            f"Rank {self.rank}: advanced {len(fields)} fields by {self.config.nsteps} steps "
            f"in {time.perf_counter() - start:.3f}s."
        )

    def emit(self, fields: list[EscapeTimeField]) -> MeshAccumulator:
        """Fold every field into one mesh. A rank without fields gets an empty mesh."""
        mesh = self.emitter.emit_all(fields)
        logger.info(f"Rank {self.rank}: mesh has {mesh.n_points} points and {mesh.n_cells} cells.")
        return mesh

    def log_in_rank_order(self, message: str) -> None:
        """Log ``message`` from every rank, one rank at a time, rank 0 first."""
        for i in range(self.transport.world_size):
            self.transport.barrier()
            if i == self.transport.rank:
                logger.info(f"{self.rank}: {message}")

    def debug_dump(self, fields: list[EscapeTimeField], stream: TextIO | None = None) -> None:
        """Print rank 0's first field step counts to ``stream``."""
        self.transport.barrier()
        if self.rank == 0 and fields:
            fields[0].debug(DebugMode.NSTEPS, stream=stream if stream is not None else sys.stderr)

    def run(self) -> RankResult:
        subdomains, fields = self.build_fields()
        self.advance(fields)

        if self.config.debug:
            self.debug_dump(fields)

        mesh = self.emit(fields)
        result = RankResult(rank=self.rank, subdomains=subdomains, fields=fields, mesh=mesh)

        if self.config.checkpoint:
            path = self.config.checkpoint.format(rank=self.rank)
            IOManager.save_fields(path, fields)
            result.files.append(path)

        if self.config.output_dir:
            result.files.append(IOManager.export_rank_mesh(mesh, self.config.output_dir, self.rank))
            if self.rank == 0:
                result.files.append(IOManager.write_collection(self.config.output_dir, self.nprocs))

        self.log_in_rank_order(f"done, {mesh.n_cells} cells")
        return result
