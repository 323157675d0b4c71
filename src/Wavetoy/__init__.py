"""MPI Wavetoy package.

Explicit leapfrog solver for the 2D scalar wave equation using MPI domain
decomposition. The global grid is split among a rectangular (or 1D) worker
grid; each rank keeps a one-cell ghost border in sync with its neighbours
through halo exchange, applies zero Dirichlet conditions on the physical
edges it owns, and contributes to collective sums on rank 0.

Solvers
-------
Sequential (no MPI):
- WaveSolver: Single-process solver on a one-worker topology

Parallel (MPI):
- WaveMPISolver: Solver with domain decomposition and halo exchange
"""

from .datastructures import (
    GlobalParams,
    GlobalDomain,
    GlobalMetrics,
    LocalParams,
    LocalMetrics,
    LocalRegion,
    WorkerTopology,
)
from .kernels import NumPyKernel, NumbaKernel
from .solvers import WaveSolver, WaveMPISolver
from .mpi import (
    partition,
    PartitionError,
    LocalGrid,
    HaloExchangeTimeout,
    GlobalReducer,
    apply_dirichlet,
)
from .problems import (
    create_grid_2d,
    gaussian,
    gaussian_initial_condition,
    setup_gaussian_problem,
)
from .runner import run_solver

__all__ = [
    # Data structures
    "GlobalParams",
    "GlobalDomain",
    "GlobalMetrics",
    "LocalParams",
    "LocalMetrics",
    "LocalRegion",
    "WorkerTopology",
    # Kernels
    "NumPyKernel",
    "NumbaKernel",
    # Solvers
    "WaveSolver",
    "WaveMPISolver",
    # Decomposition and communication
    "partition",
    "PartitionError",
    "LocalGrid",
    "HaloExchangeTimeout",
    "GlobalReducer",
    "apply_dirichlet",
    # Problem setup
    "create_grid_2d",
    "gaussian",
    "gaussian_initial_condition",
    "setup_gaussian_problem",
    # Runner
    "run_solver",
]
