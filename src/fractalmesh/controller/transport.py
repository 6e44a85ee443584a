"""
Process-group transport.

The fractal core never exchanges data between ranks; it only needs to know
its own rank, the world size and, for ordered diagnostics, a barrier.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
import logging

logger = logging.getLogger(__name__)


class Transport(ABC):
    @property
    @abstractmethod
    def rank(self) -> int:
        raise NotImplementedError

    @property
    @abstractmethod
    def world_size(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def barrier(self) -> None:
        raise NotImplementedError


class LoopbackTransport(Transport):
    """
    Single-process transport.

    ``rank`` and ``world_size`` can be overridden to run one rank's share of
    a larger job in isolation.
    """
    def __init__(self, rank: int = 0, world_size: int = 1) -> None:
        if world_size < 1:
            raise ValueError(f"world_size must be >= 1, got {world_size}.")
        if not 0 <= rank < world_size:
            raise ValueError(f"rank must be in [0, {world_size}), got {rank}.")
        self._rank = rank
        self._world_size = world_size

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def world_size(self) -> int:
        return self._world_size

    def barrier(self) -> None:
        pass


class MPITransport(Transport):
    """Transport over an mpi4py communicator (``COMM_WORLD`` by default)."""
    def __init__(self, comm=None) -> None:
        from mpi4py import MPI

        self.comm = comm if comm is not None else MPI.COMM_WORLD
        logger.debug(f"MPI transport: rank {self.comm.Get_rank()} of {self.comm.Get_size()}.")

    @property
    def rank(self) -> int:
        return self.comm.Get_rank()

    @property
    def world_size(self) -> int:
        return self.comm.Get_size()

    def barrier(self) -> None:
        self.comm.Barrier()
