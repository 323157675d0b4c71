"""Dirichlet boundary conditions at the physical edges of the global domain."""

from __future__ import annotations

from typing import Iterable, Optional

import numpy as np

from ..datastructures import SIDES, LocalRegion
from .grid import EDGE_SLICES, LocalGrid


def apply_dirichlet(
    grid: LocalGrid,
    region: Optional[LocalRegion] = None,
    arrays: Optional[Iterable[np.ndarray]] = None,
    value: float = 0.0,
):
    """Set the ghost edge on every physical boundary side to ``value``.

    Only sides this rank owns are touched (``region.is_boundary``), corners
    included. By default both ``previous`` and ``current`` are updated;
    interior cells are never written, so applying twice is a no-op.
    """
    region = grid.region if region is None else region
    if arrays is None:
        arrays = (grid.previous, grid.current)

    for arr in arrays:
        for side in SIDES:
            if region.is_boundary[side]:
                arr[EDGE_SLICES[side]] = value
