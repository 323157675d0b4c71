"""Domain decomposition of the global grid into a worker grid."""

from __future__ import annotations

import logging
import math

from ..datastructures import WorkerTopology

log = logging.getLogger(__name__)

STRATEGIES = ("auto", "sliced")


class PartitionError(ValueError):
    """The grid cannot be split evenly among the requested workers."""


def _factor_pairs(nprocs: int) -> list[tuple[int, int]]:
    return [(a, nprocs // a) for a in range(1, nprocs + 1) if nprocs % a == 0]


def _compute_dims(nprocs: int, nx: int, ny: int, strategy: str) -> tuple[int, int]:
    """Compute worker grid dimensions [nxprocs, nyprocs]."""
    if strategy == "sliced":
        return nprocs, 1
    elif strategy == "auto":
        if nprocs == 1:
            return 1, 1

        # Proportional shares; a zero share means that axis gets no worker
        share_x = (nprocs * nx) // (nx + ny)
        share_y = (nprocs * ny) // (nx + ny)
        if share_x == 0 or share_y == 0:
            raise PartitionError(
                f"Could not divide {nx}x{ny} points among {nprocs} processes: "
                f"zero workers along {'x' if share_x == 0 else 'y'}"
            )

        target = math.log(nx / ny)

        # Closest aspect ratio wins, ties go to the larger x split
        return min(
            _factor_pairs(nprocs),
            key=lambda p: (abs(math.log(p[0] / p[1]) - target), -p[0]),
        )
    else:
        raise ValueError(f"Unknown strategy: {strategy}. Use 'auto' or 'sliced'.")


def _build_neighbor_table(nxprocs: int, nyprocs: int) -> dict:
    """Map every rank to its four neighbours (None on a physical edge)."""
    table = {}
    for rank in range(nxprocs * nyprocs):
        px, py = rank // nyprocs, rank % nyprocs
        table[rank] = {
            "x_lower": rank - nyprocs if px > 0 else None,
            "x_upper": rank + nyprocs if px < nxprocs - 1 else None,
            "y_lower": rank - 1 if py > 0 else None,
            "y_upper": rank + 1 if py < nyprocs - 1 else None,
        }
    return table


def partition(nprocs: int, nx: int, ny: int, strategy: str = "auto") -> WorkerTopology:
    """Split an ``nx x ny`` grid among ``nprocs`` workers.

    Parameters
    ----------
    nprocs : int
        Number of workers (MPI ranks).
    nx, ny : int
        Global interior point counts.
    strategy : str
        'auto' splits proportionally to ``nx : ny``,
        'sliced' splits along x only.

    Returns
    -------
    WorkerTopology
        Identical on every rank for the same arguments.

    Raises
    ------
    PartitionError
        If an axis would get zero workers or the points do not divide evenly.
    """
    if nprocs < 1:
        raise PartitionError(f"Need at least one process (got {nprocs})")
    if nx <= 0 or ny <= 0:
        raise PartitionError(f"Grid must have nx, ny > 0 (got nx={nx}, ny={ny})")
    if nprocs > 1 and min(nx, ny) == 1:
        raise PartitionError(
            f"Could not divide {nx}x{ny} points among {nprocs} processes: "
            f"degenerate axis with a single point"
        )

    nxprocs, nyprocs = _compute_dims(nprocs, nx, ny, strategy)

    if nxprocs == 0 or nyprocs == 0 or nxprocs * nyprocs != nprocs:
        raise PartitionError(
            f"Invalid worker grid {nxprocs}x{nyprocs} for {nprocs} processes"
        )
    if nx % nxprocs != 0 or ny % nyprocs != 0:
        raise PartitionError(
            f"Could not (nicely) divide {nx}x{ny} points among a "
            f"{nxprocs}x{nyprocs} worker grid"
        )

    log.debug(f"Partitioned {nx}x{ny} onto {nxprocs}x{nyprocs} workers ({strategy})")

    return WorkerTopology(
        nprocs=nprocs,
        nx=nx,
        ny=ny,
        nxprocs=nxprocs,
        nyprocs=nyprocs,
        strategy=strategy,
        neighbor_table=_build_neighbor_table(nxprocs, nyprocs),
    )
