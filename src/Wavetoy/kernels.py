"""Leapfrog stencil kernels for the 2D wave equation.

Simple kernel implementations - tracking is handled by the solver. All
kernels write the interior only and read the ghost border.
"""

import numpy as np
import numba
from numba import njit, prange


@njit(parallel=True)
def _leapfrog_step_numba(
    previous: np.ndarray, current: np.ndarray, nxt: np.ndarray, cx2: float, cy2: float
):
    """Numba JIT implementation of one leapfrog step."""
    for i in prange(1, current.shape[0] - 1):
        for j in range(1, current.shape[1] - 1):
            nxt[i, j] = (
                2.0 * current[i, j]
                - previous[i, j]
                + cx2 * (current[i + 1, j] - 2.0 * current[i, j] + current[i - 1, j])
                + cy2 * (current[i, j + 1] - 2.0 * current[i, j] + current[i, j - 1])
            )


@njit(parallel=True)
def _first_step_numba(
    initial: np.ndarray, current: np.ndarray, dt_dudt: float, cx2: float, cy2: float
):
    """Numba JIT implementation of the one-sided starting step."""
    for i in prange(1, initial.shape[0] - 1):
        for j in range(1, initial.shape[1] - 1):
            current[i, j] = (
                initial[i, j]
                + dt_dudt
                + 0.5 * cx2 * (initial[i + 1, j] - 2.0 * initial[i, j] + initial[i - 1, j])
                + 0.5 * cy2 * (initial[i, j + 1] - 2.0 * initial[i, j] + initial[i, j - 1])
            )


class _BaseKernel:
    """Coefficients shared by all kernels: (c*dt/dx)^2 and (c*dt/dy)^2."""

    def __init__(self, c: float, dt: float, dx: float, dy: float, specified_numba_threads: int = 1):
        self.c = c
        self.dt = dt
        self.cx2 = (c * dt / dx) ** 2
        self.cy2 = (c * dt / dy) ** 2
        self.observed_numba_threads = None

    @classmethod
    def from_domain(cls, domain, **kwargs):
        return cls(domain.c, domain.dt, domain.dx, domain.dy, **kwargs)


class NumPyKernel(_BaseKernel):
    """NumPy-based leapfrog kernel."""

    def step(self, previous: np.ndarray, current: np.ndarray, nxt: np.ndarray):
        """Advance one time level: nxt = 2*current - previous + c^2 dt^2 Laplacian(current)."""
        u = current
        nxt[1:-1, 1:-1] = (
            2.0 * u[1:-1, 1:-1]
            - previous[1:-1, 1:-1]
            + self.cx2 * (u[2:, 1:-1] - 2.0 * u[1:-1, 1:-1] + u[0:-2, 1:-1])
            + self.cy2 * (u[1:-1, 2:] - 2.0 * u[1:-1, 1:-1] + u[1:-1, 0:-2])
        )

    def first_step(self, initial: np.ndarray, current: np.ndarray, dudt: float = 0.0):
        """Start the leapfrog scheme from ``initial`` with velocity ``dudt``."""
        u = initial
        current[1:-1, 1:-1] = (
            u[1:-1, 1:-1]
            + self.dt * dudt
            + 0.5 * self.cx2 * (u[2:, 1:-1] - 2.0 * u[1:-1, 1:-1] + u[0:-2, 1:-1])
            + 0.5 * self.cy2 * (u[1:-1, 2:] - 2.0 * u[1:-1, 1:-1] + u[1:-1, 0:-2])
        )

    def warmup(self, warmup_size: int = 10):
        """No-op for NumPy kernel."""
        pass


class NumbaKernel(_BaseKernel):
    """Numba JIT-compiled leapfrog kernel."""

    def __init__(self, c: float, dt: float, dx: float, dy: float, specified_numba_threads: int = 1):
        super().__init__(c, dt, dx, dy)

        # Set requested threads (may be clamped by NUMBA_NUM_THREADS env var)
        if specified_numba_threads is not None:
            numba.set_num_threads(min(specified_numba_threads, numba.config.NUMBA_NUM_THREADS))

        # Record what Numba actually reports
        self.observed_numba_threads = numba.get_num_threads()

    def step(self, previous: np.ndarray, current: np.ndarray, nxt: np.ndarray):
        """Advance one time level."""
        _leapfrog_step_numba(previous, current, nxt, self.cx2, self.cy2)

    def first_step(self, initial: np.ndarray, current: np.ndarray, dudt: float = 0.0):
        """Start the leapfrog scheme from ``initial`` with velocity ``dudt``."""
        _first_step_numba(initial, current, self.dt * dudt, self.cx2, self.cy2)

    def warmup(self, warmup_size: int = 10):
        """Trigger JIT compilation with a small problem."""
        u0 = np.random.randn(warmup_size, warmup_size)
        u1 = np.zeros_like(u0)
        u2 = np.zeros_like(u0)
        _first_step_numba(u0, u1, 0.0, self.cx2, self.cy2)
        for _ in range(3):
            _leapfrog_step_numba(u0, u1, u2, self.cx2, self.cy2)
            u0, u1, u2 = u1, u2, u0
