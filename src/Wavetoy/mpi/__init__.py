"""MPI domain decomposition and communication.

This package provides:
- partition: Worker grid and neighbour table (WorkerTopology)
- LocalGrid: Per-rank arrays with ghost border
- HaloExchanger: Strategies for halo exchange (numpy/datatype)
- apply_dirichlet: Physical boundary conditions
- GlobalReducer: Collective sums onto rank 0
"""

from .decomposition import PartitionError, partition
from .grid import LocalGrid
from .halo import (
    HaloExchanger,
    HaloExchangeTimeout,
    NumpyHaloExchanger,
    DatatypeHaloExchanger,
    create_halo_exchanger,
)
from .boundary import apply_dirichlet
from .reduction import GlobalReducer, rank_fill_check
from ..datastructures import LocalRegion, WorkerTopology

__all__ = [
    "partition",
    "PartitionError",
    "LocalGrid",
    "HaloExchanger",
    "HaloExchangeTimeout",
    "NumpyHaloExchanger",
    "DatatypeHaloExchanger",
    "create_halo_exchanger",
    "apply_dirichlet",
    "GlobalReducer",
    "rank_fill_check",
    "LocalRegion",
    "WorkerTopology",
]
