"""Base class for solvers."""

import time
from abc import ABC, abstractmethod
from dataclasses import asdict
from typing import Optional

import h5py
import numpy as np

from ..datastructures import GlobalDomain, GlobalMetrics, LocalMetrics


class BaseSolver(ABC):
    """Abstract base for wave equation solvers.

    Subclasses provide the time loop; the hooks below default to
    single-process behaviour and are overridden for MPI.
    """

    def __init__(self, domain: GlobalDomain):
        self.domain = domain

        # Metrics containers (match datastructures.py naming)
        self.metrics = GlobalMetrics()
        self.timeseries = LocalMetrics()

    @abstractmethod
    def solve(self) -> GlobalMetrics:
        """Execute the solver. Returns results."""
        pass

    def warmup(self, warmup_size: int = 10):
        """Warmup kernel (trigger Numba JIT if used)."""
        self.kernel.warmup(warmup_size=warmup_size)

    @abstractmethod
    def _get_solution_array(self) -> np.ndarray:
        """Return the local array holding the latest time level."""
        pass

    # ========================================================================
    # Hooks (sequential defaults)
    # ========================================================================

    def _get_time(self) -> float:
        """Get current time. Override for MPI timing."""
        return time.perf_counter()

    def _reduce_sum(self, local_sum: float) -> Optional[float]:
        """Reduce sum onto the root rank. Override for MPI."""
        return local_sum

    def _reduce_max(self, local_max: float) -> Optional[float]:
        """Reduce maximum onto the root rank. Override for MPI."""
        return local_max

    def _gather(self, obj) -> Optional[list]:
        """Gather one object per rank onto the root rank. Override for MPI."""
        return [obj]

    def _is_root(self) -> bool:
        """True if this rank should log metrics. Override for MPI."""
        return True

    def _sync_halos(self, u: np.ndarray) -> float:
        """Sync halo regions. No-op for sequential. Override for MPI."""
        return 0.0

    def _barrier(self):
        """Synchronize all ranks. No-op for sequential."""
        pass

    # ========================================================================
    # Results
    # ========================================================================

    def gather_field(self) -> Optional[np.ndarray]:
        """Assemble the global interior field (nx, ny) on the root rank.

        Collective for MPI solvers: every rank must call it. Returns None on
        non-root ranks.
        """
        u = self._get_solution_array()
        local = (self.grid.region.global_start, self.grid.interior(u).copy())
        pieces = self._gather(local)
        if not self._is_root():
            return None

        u_global = np.zeros((self.domain.nx, self.domain.ny))
        for (gixs, giys), block in pieces:
            bx, by = block.shape
            u_global[gixs - 1 : gixs - 1 + bx, giys - 1 : giys - 1 + by] = block
        return u_global

    def save_hdf5(self, path):
        """Save complete simulation state to HDF5.

        Gathers the distributed solution to rank 0, which writes the file.

        File structure:
        - /config: Runtime configuration
        - /fields/u: Global interior field (nx, ny)
        - /results: Final metrics
        - /timings/rank_0/: Rank 0 timing data
        """
        u_global = self.gather_field()

        # Only rank 0 writes
        if not self._is_root():
            return

        with h5py.File(path, "w") as f:
            config_grp = f.create_group("config")
            for key, value in self._config_dict().items():
                if value is not None:
                    config_grp.attrs[key] = value

            fields_grp = f.create_group("fields")
            fields_grp.create_dataset("u", data=u_global, dtype="f8")

            results_grp = f.create_group("results")
            for key, value in asdict(self.metrics).items():
                if value is not None:
                    results_grp.attrs[key] = value

            rank_grp = f.create_group("timings/rank_0")
            for key, values in asdict(self.timeseries).items():
                rank_grp.create_dataset(key, data=np.asarray(values, dtype="f8"))

    def _config_dict(self) -> dict:
        return {k: v for k, v in asdict(self.domain).items()}

    def _reset(self):
        """Reset timeseries."""
        self.timeseries.clear()

    def _compute_metrics(self, wall_time: float, nsteps: int):
        """Compute performance metrics."""
        self.metrics.wall_time = wall_time
        self.metrics.nsteps = nsteps

        if nsteps > 0 and wall_time > 0:
            self.metrics.mlups = self.domain.n_interior * nsteps / (wall_time * 1e6)
