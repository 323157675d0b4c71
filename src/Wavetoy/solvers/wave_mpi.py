"""MPI-parallel wave solver (extends WaveSolver)."""

import logging
import socket
from typing import Optional

import numpy as np
from mpi4py import MPI

from .mpi_mixin import MPISolverMixin
from .wave import WaveSolver
from ..datastructures import GlobalDomain, LocalParams
from ..mpi.decomposition import partition
from ..mpi.halo import create_halo_exchanger

log = logging.getLogger(__name__)


class WaveMPISolver(MPISolverMixin, WaveSolver):
    """Parallel wave solver with MPI domain decomposition.

    Extends WaveSolver with halo exchange between neighbouring ranks and
    collective reductions onto rank 0.

    Parameters
    ----------
    domain : GlobalDomain
        Grid, wave speed and number of steps.
    comm : MPI.Comm, optional
        Communicator (default: MPI.COMM_WORLD).
    strategy : str
        'auto' for a proportional 2D worker grid, 'sliced' for 1D along x.
    communicator : str
        'numpy' for buffer copies, 'custom' for MPI derived datatypes.
    halo_timeout : float or None
        Seconds to wait for a halo pair before giving up (None = forever).
    **kwargs
        Passed to WaveSolver.

    Raises
    ------
    PartitionError
        On every rank, if the grid does not split evenly.
    """

    def __init__(
        self,
        domain: GlobalDomain,
        comm: Optional[MPI.Comm] = None,
        strategy: str = "auto",
        communicator: str = "numpy",
        halo_timeout: Optional[float] = 60.0,
        **kwargs,
    ):
        # MPI setup before parent init
        self._init_mpi(comm)

        self.strategy = strategy
        self.communicator = communicator
        self.halo_timeout = halo_timeout

        # Parent init (calls _init_topology, _init_kernel and _init_arrays)
        super().__init__(domain, **kwargs)

        # Store config info
        self.local_shape = self.region.local_shape
        self.halo_size_mb = self.halo.get_halo_size_bytes(self.region.neighbors) / (1024 * 1024)

    def _init_topology(self):
        """Partition the grid among all ranks of the communicator."""
        self.topology = partition(self.size, self.domain.nx, self.domain.ny, self.strategy)
        self.region = self.topology.get_rank_info(self.rank)
        log.debug(
            f"Rank {self.rank}: coords={self.region.coords}, "
            f"start={self.region.global_start}, neighbors={self.region.neighbors}"
        )

    def _init_arrays(self):
        """Allocate local arrays and halo buffers."""
        super()._init_arrays()
        self.halo = create_halo_exchanger(self.communicator, timeout=self.halo_timeout)
        self.halo.setup(self.grid)

    def _sync_halos(self, u: np.ndarray) -> float:
        """Sync halo regions with neighbors."""
        t0 = MPI.Wtime()
        self.halo.exchange(u, self.comm, self.region.neighbors)
        return MPI.Wtime() - t0

    def get_rank_info(self) -> LocalParams:
        """Get topology info for this rank (for MLflow artifact)."""
        return LocalParams(
            rank=self.rank,
            hostname=socket.gethostname(),
            coords=self.region.coords,
            neighbors=dict(self.region.neighbors),
            local_shape=self.region.local_shape,
            global_start=self.region.global_start,
            global_end=self.region.global_end,
        )

    def _config_dict(self) -> dict:
        config = super()._config_dict()
        config.update(
            n_ranks=self.size,
            nxprocs=self.topology.nxprocs,
            nyprocs=self.topology.nyprocs,
            strategy=self.strategy,
            communicator=self.communicator,
        )
        return config
