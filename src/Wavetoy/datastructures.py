"""Data structures for solver configuration, geometry and results.

Architecture: 2x2 matrix of Params vs Metrics × Global vs Local

                 Params (input/config)         Metrics (output/results)
                 ─────────────────────         ────────────────────────
Global           GlobalParams, GlobalDomain    GlobalMetrics
(same across     nx, ny, nsteps, c,            wall_time, global_sum,
ranks / agg)     n_ranks, strategy...          integral, mlups...

Local            LocalParams, LocalRegion      LocalMetrics
(per-rank)       rank, coords, neighbors,      compute_times[],
                 global_start/end...           halo_times[]...

WorkerTopology sits in between: it is identical on every rank but describes
all of them.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

# Sides of a local grid, in exchange order. x is the first (row) index.
SIDES = ("x_lower", "x_upper", "y_lower", "y_upper")

OPPOSITE = {
    "x_lower": "x_upper",
    "x_upper": "x_lower",
    "y_lower": "y_upper",
    "y_upper": "y_lower",
}


# ============================================================================
# Global (identical across ranks, or aggregated on rank 0)
# ============================================================================


@dataclass
class GlobalParams:
    """Run configuration - validated by Hydra, logged to MLflow as params.

    Immutable configuration set before the run. Identical across all MPI ranks.
    """

    # Required
    nx: int
    ny: int

    # Physics
    nsteps: int = 10
    c: float = 1.0
    cfl: float = 0.5
    width: float = 0.01  # Gaussian initial condition exp(-(x^2+y^2)/width)

    # Parallelization
    n_ranks: int = 1
    strategy: str = "auto"  # "auto" | "sliced"
    communicator: str = "numpy"  # "numpy" | "custom"
    halo_timeout: Optional[float] = 60.0
    diagnostic_interval: int = 0

    # Numba
    use_numba: bool = False
    specified_numba_threads: int = 1

    # Experiment tracking
    experiment_name: str = "default"

    # Auto-detected at runtime (not from config)
    environment: str = field(init=False)

    def __post_init__(self):
        """Validate numeric fields and detect the environment."""
        for name in ("nx", "ny", "nsteps", "n_ranks", "diagnostic_interval", "specified_numba_threads"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer (got {value!r})")
        for name in ("c", "cfl", "width"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number (got {value!r})")
        if self.halo_timeout is not None and not isinstance(self.halo_timeout, (int, float)):
            raise ValueError(f"halo_timeout must be a number or None (got {self.halo_timeout!r})")

        self.environment = (
            "hpc"
            if os.environ.get("LSB_JOBID") or os.environ.get("SLURM_JOB_ID")
            else "local"
        )

    def to_domain(self) -> "GlobalDomain":
        """Build the physical domain described by this configuration."""
        return GlobalDomain(
            nx=self.nx, ny=self.ny, nsteps=self.nsteps, c=self.c, cfl=self.cfl
        )

    def to_mlflow(self) -> dict:
        """Convert to MLflow-compatible params dict (bools as int, no None)."""
        return {
            k: (int(v) if isinstance(v, bool) else v)
            for k, v in self.__dict__.items()
            if v is not None
        }


@dataclass(frozen=True)
class GlobalDomain:
    """Physical domain and discretisation, immutable for the run.

    Interior points are numbered ``1..nx`` and ``1..ny``; indices ``0`` and
    ``n+1`` lie on the physical boundary, so global point ``(i, j)`` sits at
    ``(x_min + i*dx, y_min + j*dy)``.
    """

    nx: int
    ny: int
    nsteps: int = 10
    c: float = 1.0
    cfl: float = 0.5
    x_min: float = -1.0
    x_max: float = 1.0
    y_min: float = -1.0
    y_max: float = 1.0

    def __post_init__(self):
        if self.nx <= 0 or self.ny <= 0:
            raise ValueError(f"Grid must have nx, ny > 0 (got nx={self.nx}, ny={self.ny})")
        if self.c <= 0:
            raise ValueError(f"Wave speed must be positive (got c={self.c})")
        if self.cfl <= 0:
            raise ValueError(f"Courant number must be positive (got cfl={self.cfl})")
        if self.nsteps < 0:
            raise ValueError(f"nsteps must be >= 0 (got {self.nsteps})")
        if self.x_max <= self.x_min or self.y_max <= self.y_min:
            raise ValueError("Physical extents must satisfy x_min < x_max and y_min < y_max")

    @property
    def dx(self) -> float:
        return (self.x_max - self.x_min) / (self.nx + 1)

    @property
    def dy(self) -> float:
        return (self.y_max - self.y_min) / (self.ny + 1)

    @property
    def dt(self) -> float:
        return self.cfl * min(self.dx, self.dy) / self.c

    @property
    def t_final(self) -> float:
        return self.nsteps * self.dt

    @property
    def n_interior(self) -> int:
        return self.nx * self.ny

    def courant_number(self) -> float:
        """Return c*dt/min(dx, dy)."""
        return self.c * self.dt / min(self.dx, self.dy)

    def is_stable(self) -> bool:
        """True if the 2D leapfrog CFL limit c*dt*sqrt(1/dx^2 + 1/dy^2) <= 1 holds."""
        return self.c * self.dt * math.sqrt(1.0 / self.dx**2 + 1.0 / self.dy**2) <= 1.0


@dataclass
class GlobalMetrics:
    """Aggregated results - logged to MLflow as metrics.

    Final results computed/aggregated on rank 0.
    """

    nsteps: int = 0
    wall_time: Optional[float] = None

    # Diagnostics of the final field
    global_sum: Optional[float] = None
    integral: Optional[float] = None  # global_sum * dx * dy
    max_abs: Optional[float] = None

    # Timing breakdown (sum across all steps)
    total_compute_time: Optional[float] = None
    total_halo_time: Optional[float] = None

    # Performance metrics
    mlups: Optional[float] = None  # Million Lattice Updates per Second

    # Numba runtime info (what was actually available)
    observed_numba_threads: Optional[int] = None

    def to_mlflow(self) -> dict:
        """Convert to MLflow-compatible dict (no None, bools as int)."""
        return {
            k: (int(v) if isinstance(v, bool) else v)
            for k, v in self.__dict__.items()
            if v is not None
        }


# ============================================================================
# Local (per-rank)
# ============================================================================


@dataclass
class LocalParams:
    """Per-rank geometry - gathered to rank 0, logged as artifact."""

    rank: int
    hostname: str = ""
    coords: Optional[Tuple[int, int]] = None
    neighbors: Dict[str, Optional[int]] = field(default_factory=dict)
    local_shape: Optional[Tuple[int, int]] = None
    global_start: Optional[Tuple[int, int]] = None
    global_end: Optional[Tuple[int, int]] = None


@dataclass
class LocalMetrics:
    """Per-rank timeseries. Accumulated during solve, logged post-solve."""

    compute_times: List[float] = field(default_factory=list)
    halo_times: List[float] = field(default_factory=list)

    # Global (rank 0 only - logged as step metrics)
    sum_history: List[float] = field(default_factory=list)

    def clear(self):
        """Clear all timeseries data."""
        self.compute_times.clear()
        self.halo_times.clear()
        self.sum_history.clear()


# ============================================================================
# Domain decomposition geometry
# ============================================================================


@dataclass(frozen=True)
class LocalRegion:
    """The part of the global grid owned by one rank.

    ``global_start`` and ``global_end`` are inclusive, 1-based interior
    indices per axis. The local arrays add a ghost border of width one, so
    ``halo_shape = local_shape + 2``.
    """

    rank: int
    coords: Tuple[int, int]
    global_start: Tuple[int, int]
    global_end: Tuple[int, int]
    local_shape: Tuple[int, int]
    neighbors: Dict[str, Optional[int]]
    is_boundary: Dict[str, bool]

    @property
    def halo_shape(self) -> Tuple[int, int]:
        return (self.local_shape[0] + 2, self.local_shape[1] + 2)

    @property
    def n_neighbors(self) -> int:
        return sum(1 for n in self.neighbors.values() if n is not None)


@dataclass(frozen=True)
class WorkerTopology:
    """Arrangement of ``nprocs`` ranks as an ``nxprocs x nyprocs`` grid.

    Ranks are numbered row-major over the worker grid:
    ``rank = px * nyprocs + py``. The neighbour table is built once by
    :func:`Wavetoy.mpi.decomposition.partition`; ``None`` marks a physical
    edge.
    """

    nprocs: int
    nx: int
    ny: int
    nxprocs: int
    nyprocs: int
    strategy: str
    neighbor_table: Dict[int, Dict[str, Optional[int]]]

    @property
    def nxnom(self) -> int:
        return self.nx // self.nxprocs

    @property
    def nynom(self) -> int:
        return self.ny // self.nyprocs

    @property
    def dims(self) -> Tuple[int, int]:
        return (self.nxprocs, self.nyprocs)

    def coords(self, rank: int) -> Tuple[int, int]:
        """Worker-grid coordinate ``(px, py)`` of ``rank``."""
        if not 0 <= rank < self.nprocs:
            raise ValueError(f"Rank {rank} outside [0, {self.nprocs})")
        return (rank // self.nyprocs, rank % self.nyprocs)

    def rank_of(self, px: int, py: int) -> int:
        return px * self.nyprocs + py

    def neighbors(self, rank: int) -> Dict[str, Optional[int]]:
        return dict(self.neighbor_table[rank])

    def get_rank_info(self, rank: int) -> LocalRegion:
        """Describe the region owned by ``rank``."""
        px, py = self.coords(rank)
        nxnom, nynom = self.nxnom, self.nynom
        gixs = px * nxnom + 1
        giys = py * nynom + 1
        return LocalRegion(
            rank=rank,
            coords=(px, py),
            global_start=(gixs, giys),
            global_end=(gixs + nxnom - 1, giys + nynom - 1),
            local_shape=(nxnom, nynom),
            neighbors=self.neighbors(rank),
            is_boundary={
                "x_lower": px == 0,
                "x_upper": px == self.nxprocs - 1,
                "y_lower": py == 0,
                "y_upper": py == self.nyprocs - 1,
            },
        )
