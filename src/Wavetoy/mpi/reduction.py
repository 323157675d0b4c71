"""Global reductions across ranks."""

from __future__ import annotations

from typing import Optional

import numpy as np
from mpi4py import MPI

from ..datastructures import WorkerTopology
from .grid import LocalGrid


class GlobalReducer:
    """Collective sum of per-rank scalars onto a root rank.

    The combination order is up to MPI, so results are reproducible only to
    floating-point tolerance across process counts.
    """

    def __init__(self, comm: MPI.Comm, root: int = 0):
        self.comm = comm
        self.root = root
        self.rank = comm.Get_rank()

    @staticmethod
    def local_sum(grid: LocalGrid, arr: np.ndarray) -> float:
        """Sum of the owned interior (ghost cells excluded)."""
        return grid.interior_sum(arr)

    def _reduce(self, local_value: float, op) -> Optional[float]:
        sendbuf = np.array([local_value], dtype=np.float64)
        recvbuf = np.zeros(1, dtype=np.float64) if self.rank == self.root else None
        self.comm.Reduce(sendbuf, recvbuf, op=op, root=self.root)

        if self.rank == self.root:
            return float(recvbuf[0])
        return None

    def reduce_sum(self, local_value: float) -> Optional[float]:
        """Sum ``local_value`` over all ranks. Returns the total on root, None elsewhere."""
        return self._reduce(local_value, MPI.SUM)

    def reduce_max(self, local_value: float) -> Optional[float]:
        """Maximum of ``local_value`` over all ranks (root only)."""
        return self._reduce(local_value, MPI.MAX)

    def barrier(self):
        self.comm.Barrier()


def rank_fill_check(topology: WorkerTopology, comm: MPI.Comm) -> Optional[float]:
    """Reduce-only diagnostic: fill each local array with its rank and sum.

    No field data is exchanged. On root the result must equal
    ``sum(range(nprocs)) * nxnom * nynom``; None on other ranks.
    """
    rank = comm.Get_rank()
    grid = LocalGrid(topology.get_rank_info(rank))
    grid.previous[:, :] = float(rank)

    reducer = GlobalReducer(comm)
    return reducer.reduce_sum(reducer.local_sum(grid, grid.previous))
