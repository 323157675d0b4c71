"""Halo exchange implementations for distributed grids.

Every side with a neighbour is exchanged as one send/receive pair, and the
pair completes before the next side starts. Sides without a neighbour are
physical boundaries and are skipped; their ghost cells belong to the
boundary conditions.

Waiting is bounded: a peer that never answers (e.g. an inconsistent
topology) raises :class:`HaloExchangeTimeout` instead of hanging the job.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Iterable, Optional

import numpy as np
from mpi4py import MPI

from ..datastructures import OPPOSITE, SIDES
from .grid import LocalGrid

log = logging.getLogger(__name__)

# Tag of a message travelling toward each side of the sender
TAGS = {"x_lower": 10, "x_upper": 11, "y_lower": 20, "y_upper": 21}

# Sleep between polls of pending requests (seconds), doubled up to the max
_POLL_MIN = 1e-6
_POLL_MAX = 1e-3


class HaloExchangeTimeout(RuntimeError):
    """A halo send/receive pair did not complete within the timeout."""


def wait_all(requests: list, timeout: Optional[float], what: str = "halo exchange"):
    """Wait for all requests, giving up after ``timeout`` seconds.

    ``timeout=None`` blocks indefinitely.
    """
    if timeout is None:
        for req in requests:
            req.Wait()
        return

    deadline = time.monotonic() + timeout
    pending = list(requests)
    pause = _POLL_MIN
    while pending:
        pending = [req for req in pending if not req.Test()]
        if not pending:
            break
        if time.monotonic() > deadline:
            raise HaloExchangeTimeout(
                f"{what} did not complete within {timeout:.1f}s "
                f"({len(pending)} of {len(requests)} requests pending)"
            )
        # Back off between polls
        time.sleep(pause)
        pause = min(2 * pause, _POLL_MAX)


class HaloExchanger(ABC):
    """Abstract base for halo exchange strategies."""

    def __init__(self, timeout: Optional[float] = 60.0):
        self.timeout = timeout
        self.grid: Optional[LocalGrid] = None

    @abstractmethod
    def setup(self, grid: LocalGrid):
        """Initialize exchange buffers or datatypes."""
        pass

    @abstractmethod
    def _exchange_side(self, arr: np.ndarray, comm: MPI.Comm, side: str, neighbor: int):
        """Exchange one side with its neighbour and wait for completion."""
        pass

    def exchange(
        self,
        arr: np.ndarray,
        comm: MPI.Comm,
        neighbors: dict,
        directions: Optional[Iterable[str]] = None,
    ):
        """Fill the ghost cells of ``arr`` from the neighbours.

        Parameters
        ----------
        arr : np.ndarray
            Local array with ghost border.
        comm : MPI.Comm
            Communicator whose ranks match the neighbour table.
        neighbors : dict
            Side -> neighbour rank (None for physical boundaries).
        directions : iterable of str, optional
            Subset of sides to exchange (default: all four, in fixed order).
        """
        if self.grid is None:
            raise RuntimeError("Halo exchanger used before setup()")

        wanted = SIDES if directions is None else tuple(directions)
        for side in SIDES:
            if side not in wanted:
                continue
            neighbor = neighbors.get(side)
            if neighbor is None:
                continue
            try:
                self._exchange_side(arr, comm, side, neighbor)
            except HaloExchangeTimeout as e:
                raise HaloExchangeTimeout(
                    f"Rank {comm.Get_rank()}: {side} exchange with rank {neighbor} failed: {e}"
                ) from e

    def get_halo_size_bytes(self, neighbors: dict) -> int:
        """Calculate total bytes transferred per halo exchange."""
        total = 0
        for side in SIDES:
            if neighbors.get(side) is not None:
                total += self.grid.line_length(side) * 8 * 2  # float64, send+recv
        return total


class NumpyHaloExchanger(HaloExchanger):
    """Halo exchange through preallocated numpy pack/unpack buffers."""

    def setup(self, grid: LocalGrid):
        """Preallocate one send and one receive buffer per side."""
        self.grid = grid
        self._send = {side: np.empty(grid.line_length(side)) for side in SIDES}
        self._recv = {side: np.empty(grid.line_length(side)) for side in SIDES}

    def _exchange_side(self, arr, comm, side, neighbor):
        send = self.grid.pack(arr, side, out=self._send[side])
        recv = self._recv[side]

        requests = [
            comm.Irecv(recv, source=neighbor, tag=TAGS[OPPOSITE[side]]),
            comm.Isend(send, dest=neighbor, tag=TAGS[side]),
        ]
        wait_all(requests, self.timeout, what=f"{side} exchange")

        self.grid.unpack(arr, side, recv)


class DatatypeHaloExchanger(HaloExchanger):
    """Halo exchange using MPI derived datatypes (zero-copy).

    Rows along x are contiguous and travel as plain buffers; columns along
    y are strided and use a vector datatype.
    """

    def setup(self, grid: LocalGrid):
        """Create the column datatype and pre-compute flat offsets."""
        self.grid = grid
        nxnom, nynom = grid.local_shape
        hx, hy = grid.halo_shape

        def flat_idx(i, j):
            return i * hy + j

        self._column = MPI.DOUBLE.Create_vector(nxnom, 1, hy)
        self._column.Commit()

        self._offsets = {
            "y_lower": {"send": flat_idx(1, 1), "recv": flat_idx(1, 0)},
            "y_upper": {"send": flat_idx(1, hy - 2), "recv": flat_idx(1, hy - 1)},
        }

    def _exchange_side(self, arr, comm, side, neighbor):
        if side.startswith("x"):
            send = self.grid.boundary(arr, side)
            recv = self.grid.ghost(arr, side)
            send_spec, recv_spec = send, recv
        else:
            flat = arr.ravel()
            off = self._offsets[side]
            send_spec = [flat[off["send"]:], 1, self._column]
            recv_spec = [flat[off["recv"]:], 1, self._column]

        requests = [
            comm.Irecv(recv_spec, source=neighbor, tag=TAGS[OPPOSITE[side]]),
            comm.Isend(send_spec, dest=neighbor, tag=TAGS[side]),
        ]
        wait_all(requests, self.timeout, what=f"{side} exchange")

    def __del__(self):
        """Free MPI datatypes."""
        column = getattr(self, "_column", None)
        if column is not None and column != MPI.DATATYPE_NULL and not MPI.Is_finalized():
            column.Free()


def create_halo_exchanger(exchange_type: str, timeout: Optional[float] = 60.0) -> HaloExchanger:
    """Factory: 'numpy' for buffer-based, 'custom' for MPI datatypes."""
    if exchange_type == "numpy":
        return NumpyHaloExchanger(timeout=timeout)
    elif exchange_type == "custom":
        return DatatypeHaloExchanger(timeout=timeout)
    else:
        raise ValueError(f"Unknown halo_exchange type: {exchange_type}")
