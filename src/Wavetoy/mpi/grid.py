"""Local grid with a one-cell ghost border.

Each rank owns three state arrays (``previous``, ``current``, ``next``) of
shape ``(nxnom + 2, nynom + 2)``. Index 0 and ``n + 1`` along each axis are
ghost cells; everything in between is owned interior. Arrays are C-ordered
so a row along x (fixed ``i``) is contiguous in memory.
"""

from __future__ import annotations

from typing import Callable, Optional

import numpy as np

from ..datastructures import GlobalDomain, LocalRegion

# Owned boundary line next to each side (sent to the neighbour on that side)
_PACK_SLICES = {
    "x_lower": (1, slice(1, -1)),
    "x_upper": (-2, slice(1, -1)),
    "y_lower": (slice(1, -1), 1),
    "y_upper": (slice(1, -1), -2),
}

# Ghost line on each side (filled from the neighbour on that side)
_GHOST_SLICES = {
    "x_lower": (0, slice(1, -1)),
    "x_upper": (-1, slice(1, -1)),
    "y_lower": (slice(1, -1), 0),
    "y_upper": (slice(1, -1), -1),
}

# Full ghost edge including corners (for boundary conditions)
EDGE_SLICES = {
    "x_lower": (0, slice(None)),
    "x_upper": (-1, slice(None)),
    "y_lower": (slice(None), 0),
    "y_upper": (slice(None), -1),
}


class LocalGrid:
    """Per-rank storage for the three time levels.

    Parameters
    ----------
    region : LocalRegion
        The part of the global grid owned by this rank.
    domain : GlobalDomain, optional
        Needed only for physical coordinates (initial conditions).

    Example
    -------
    >>> grid = LocalGrid(topology.get_rank_info(rank), domain)
    >>> grid.fill_interior(grid.previous, gaussian)
    >>> buf = grid.pack(grid.current, "x_upper")
    """

    def __init__(self, region: LocalRegion, domain: Optional[GlobalDomain] = None):
        self.region = region
        self.domain = domain
        self.local_shape = region.local_shape
        self.halo_shape = region.halo_shape

        self.previous = self.allocate()
        self.current = self.allocate()
        self.next = self.allocate()

    def allocate(self, dtype=np.float64) -> np.ndarray:
        """Allocate a zeroed local array with ghost border."""
        return np.zeros(self.halo_shape, dtype=dtype)

    def rotate(self):
        """Advance one time level by relabelling the buffers."""
        self.previous, self.current, self.next = self.current, self.next, self.previous

    # ------------------------------------------------------------------
    # Indexed access
    # ------------------------------------------------------------------

    def _check_index(self, i: int, j: int):
        hx, hy = self.halo_shape
        if not (0 <= i < hx and 0 <= j < hy):
            raise IndexError(f"Local index ({i}, {j}) outside {self.halo_shape}")

    def get(self, arr: np.ndarray, i: int, j: int) -> float:
        if __debug__:
            self._check_index(i, j)
        return float(arr[i, j])

    def set(self, arr: np.ndarray, i: int, j: int, value: float):
        if __debug__:
            self._check_index(i, j)
        arr[i, j] = value

    # ------------------------------------------------------------------
    # Halo packing
    # ------------------------------------------------------------------

    def line_length(self, side: str) -> int:
        """Number of values in the boundary line on ``side``."""
        nxnom, nynom = self.local_shape
        return nynom if side.startswith("x") else nxnom

    def pack(self, arr: np.ndarray, side: str, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Copy the owned boundary line next to ``side`` into a flat buffer."""
        if out is None:
            out = np.empty(self.line_length(side), dtype=arr.dtype)
        out[:] = arr[_PACK_SLICES[side]]
        return out

    def unpack(self, arr: np.ndarray, side: str, buf: np.ndarray):
        """Write a received buffer into the ghost line on ``side``."""
        arr[_GHOST_SLICES[side]] = buf

    def ghost(self, arr: np.ndarray, side: str) -> np.ndarray:
        """View of the ghost line on ``side`` (no corners)."""
        return arr[_GHOST_SLICES[side]]

    def boundary(self, arr: np.ndarray, side: str) -> np.ndarray:
        """View of the owned boundary line next to ``side``."""
        return arr[_PACK_SLICES[side]]

    # ------------------------------------------------------------------
    # Interior
    # ------------------------------------------------------------------

    @staticmethod
    def interior(arr: np.ndarray) -> np.ndarray:
        return arr[1:-1, 1:-1]

    def interior_sum(self, arr: np.ndarray) -> float:
        """Sum of owned cells only; ghosts duplicate neighbour data."""
        return float(np.sum(self.interior(arr)))

    def coordinates(self):
        """Physical coordinate meshgrid (X, Y) of the owned interior."""
        if self.domain is None:
            raise RuntimeError("LocalGrid has no domain; physical coordinates unavailable")

        d = self.domain
        (gixs, giys), (gixe, giye) = self.region.global_start, self.region.global_end

        x = d.x_min + np.arange(gixs, gixe + 1) * d.dx
        y = d.y_min + np.arange(giys, giye + 1) * d.dy
        return np.meshgrid(x, y, indexing="ij")

    def fill_interior(self, arr: np.ndarray, func: Callable[[np.ndarray, np.ndarray], np.ndarray]):
        """Evaluate ``func(X, Y)`` on the owned interior of ``arr``."""
        X, Y = self.coordinates()
        arr[1:-1, 1:-1] = func(X, Y)
