"""MPI mixin providing common parallel solver functionality."""

from typing import Optional

from mpi4py import MPI

from ..mpi.reduction import GlobalReducer


class MPISolverMixin:
    """Mixin providing common MPI functionality for parallel solvers.

    Provides shared implementations for:
    - MPI initialization (comm, rank, size)
    - Timing via MPI.Wtime()
    - Global sums via MPI.Reduce() onto rank 0
    - Root rank checking

    Usage:
        class MyMPISolver(MPISolverMixin, MySolver):
            def __init__(self, ...):
                self._init_mpi(comm)
                ...
    """

    def _init_mpi(self, comm: Optional[MPI.Comm] = None):
        """Initialize MPI attributes. Call early in subclass __init__."""
        self.comm = MPI.COMM_WORLD if comm is None else comm
        self.rank = self.comm.Get_rank()
        self.size = self.comm.Get_size()
        self.reducer = GlobalReducer(self.comm, root=0)

    def _get_time(self) -> float:
        """Get current time using MPI.Wtime()."""
        return MPI.Wtime()

    def _reduce_sum(self, local_sum: float) -> Optional[float]:
        """Reduce sum onto rank 0 (None on other ranks)."""
        return self.reducer.reduce_sum(local_sum)

    def _reduce_max(self, local_max: float) -> Optional[float]:
        """Reduce maximum onto rank 0 (None on other ranks)."""
        return self.reducer.reduce_max(local_max)

    def _gather(self, obj) -> Optional[list]:
        """Gather pickled objects onto rank 0."""
        return self.comm.gather(obj, root=0)

    def _is_root(self) -> bool:
        """Only rank 0 logs metrics."""
        return self.rank == 0

    def _barrier(self):
        """Synchronize all ranks."""
        self.reducer.barrier()
