"""Sequential leapfrog solver for the 2D wave equation."""

import logging
from typing import Callable, Optional

import numpy as np

from .base import BaseSolver
from ..datastructures import GlobalDomain, GlobalMetrics
from ..kernels import NumPyKernel, NumbaKernel
from ..mpi.boundary import apply_dirichlet
from ..mpi.decomposition import partition
from ..mpi.grid import LocalGrid
from ..problems import gaussian_initial_condition

log = logging.getLogger(__name__)


class WaveSolver(BaseSolver):
    """Single-process wave solver.

    Runs the same grid, boundary and kernel code as the MPI solver on a
    one-worker topology; halo exchange and reductions are no-ops.

    Parameters
    ----------
    domain : GlobalDomain
        Grid, wave speed and number of steps.
    use_numba : bool
        Use Numba JIT kernel (default: False).
    numba_threads : int
        Number of Numba threads (default: 1).
    width : float
        Width of the Gaussian initial condition (default: 0.01).
    diagnostic_interval : int
        Record the global field sum every this many steps (0 = never).
    initial_condition : callable, optional
        ``f(X, Y)`` evaluated on the interior; overrides the Gaussian.
    dudt : float
        Uniform initial velocity (default: 0).
    """

    def __init__(
        self,
        domain: GlobalDomain,
        use_numba: bool = False,
        numba_threads: int = 1,
        width: float = 0.01,
        diagnostic_interval: int = 0,
        initial_condition: Optional[Callable] = None,
        dudt: float = 0.0,
    ):
        super().__init__(domain)

        self.use_numba = use_numba
        self.numba_threads = numba_threads
        self.width = width
        self.diagnostic_interval = diagnostic_interval
        self.initial_condition = initial_condition or gaussian_initial_condition(width)
        self.dudt = dudt
        self.steps_taken = 0

        self._init_topology()
        self._init_kernel()
        self._init_arrays()

        if not domain.is_stable() and self._is_root():
            log.warning(
                f"Courant number {domain.courant_number():.3f} violates the 2D CFL limit; "
                "the solution will blow up"
            )

    def _init_topology(self):
        """One worker owns the whole grid."""
        self.topology = partition(1, self.domain.nx, self.domain.ny)
        self.region = self.topology.get_rank_info(0)

    def _init_kernel(self):
        """Initialize the stencil kernel."""
        if self.use_numba:
            self.kernel = NumbaKernel.from_domain(
                self.domain, specified_numba_threads=self.numba_threads
            )
        else:
            self.kernel = NumPyKernel.from_domain(self.domain)

    def _init_arrays(self):
        """Allocate the three time levels."""
        self.grid = LocalGrid(self.region, self.domain)

    def _apply_boundary_conditions(self):
        """Zero the ghost edges on physical boundaries (previous and current)."""
        apply_dirichlet(self.grid, self.region)

    def solve(self) -> GlobalMetrics:
        """Advance ``domain.nsteps`` time levels from the initial condition."""
        self._reset()
        grid = self.grid
        nsteps = self.domain.nsteps

        for arr in (grid.previous, grid.current, grid.next):
            arr.fill(0.0)
        grid.fill_interior(grid.previous, self.initial_condition)
        self.steps_taken = 0

        t_start = self._get_time()

        for step in range(1, nsteps + 1):
            # Ghosts of the level the stencil reads
            src = grid.previous if step == 1 else grid.current
            halo_time = self._sync_halos(src)

            t0 = self._get_time()
            self._apply_boundary_conditions()
            if step == 1:
                self.kernel.first_step(grid.previous, grid.current, self.dudt)
            else:
                self.kernel.step(grid.previous, grid.current, grid.next)
                grid.rotate()
            compute_time = self._get_time() - t0

            self.steps_taken = step
            self.timeseries.compute_times.append(compute_time)
            self.timeseries.halo_times.append(halo_time)

            if self.diagnostic_interval and step % self.diagnostic_interval == 0:
                total = self._reduce_sum(grid.interior_sum(grid.current))
                if self._is_root():
                    self.timeseries.sum_history.append(total)

        self._barrier()
        wall_time = self._get_time() - t_start
        self._finalize(wall_time)

        return self.metrics

    def _get_solution_array(self) -> np.ndarray:
        """Latest time level (the initial field if no step was taken)."""
        return self.grid.current if self.steps_taken > 0 else self.grid.previous

    def _finalize(self, wall_time: float):
        """Reduce the final field sum and fill metrics on the root rank."""
        u = self._get_solution_array()
        total = self._reduce_sum(self.grid.interior_sum(u))
        peak = self._reduce_max(float(np.max(np.abs(self.grid.interior(u)))))

        if self._is_root():
            self.metrics.global_sum = total
            self.metrics.integral = total * self.domain.dx * self.domain.dy
            self.metrics.max_abs = peak
            self.metrics.total_compute_time = sum(self.timeseries.compute_times)
            self.metrics.total_halo_time = sum(self.timeseries.halo_times)
        self.metrics.observed_numba_threads = self.kernel.observed_numba_threads
        self._compute_metrics(wall_time, self.steps_taken)
