"""
Domain Partitioning
===================
Splits the global box into ``nxcuts x nycuts x nzcuts`` subdomains and assigns
each one to a rank.

The assignment is a pure function of the cut counts and the number of ranks,
so every worker can compute it independently and agree on who owns what
without talking to the others.

Ordering: x is the outermost loop, then y, then z. The linear position ``i``
in that order determines the owner as ``i % nprocs``.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging

from fractalmesh.model.bounds import Bounds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Subdomain:
    """One sub-box of the global volume and the rank that owns it."""
    rank: int
    xi: int
    yi: int
    zi: int
    index: int = 0

    @property
    def cell(self) -> tuple[int, int, int]:
        return (self.xi, self.yi, self.zi)


class DomainPartitioner:
    def __init__(self, nxcuts: int, nycuts: int, nzcuts: int, nprocs: int) -> None:
        """
        Args:
            nxcuts, nycuts, nzcuts: Number of subdomains along each axis.
            nprocs: Number of ranks taking part in the round-robin.

        Raises:
            ValueError: If a cut count or ``nprocs`` is smaller than 1.
        """
        for name, value in (("nxcuts", nxcuts), ("nycuts", nycuts), ("nzcuts", nzcuts), ("nprocs", nprocs)):
            if value < 1:
                raise ValueError(f"{name} must be >= 1, got {value}.")

        self.cuts = (int(nxcuts), int(nycuts), int(nzcuts))
        self.nprocs = int(nprocs)
        self._assignments = self._build()

    def _build(self) -> list[Subdomain]:
        nxcuts, nycuts, nzcuts = self.cuts
        assignments = []
        i = 0
        for xi in range(nxcuts):
            for yi in range(nycuts):
                for zi in range(nzcuts):
                    assignments.append(Subdomain(rank=i % self.nprocs, xi=xi, yi=yi, zi=zi, index=i))
                    i += 1
        return assignments

    @property
    def total(self) -> int:
        """Total number of subdomains."""
        return len(self._assignments)

    def assignments(self) -> list[Subdomain]:
        """All subdomains in global order."""
        return list(self._assignments)

    def owned_by(self, rank: int) -> list[Subdomain]:
        """
        Subdomains owned by ``rank``. Empty when there are more ranks than
        subdomains and this rank drew none.
        """
        owned = [s for s in self._assignments if s.rank == rank]
        if not owned:
            logger.debug(f"Rank {rank} owns no subdomains ({self.total} subdomains, {self.nprocs} ranks).")
        return owned

    def bounds_for(self, subdomain: Subdomain, global_bounds: Bounds) -> Bounds:
        """Spatial extent of ``subdomain`` inside ``global_bounds``."""
        return global_bounds.subdivide(self.cuts, subdomain.cell)
