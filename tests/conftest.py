"""Shared fixtures: an in-memory communicator for multi-rank unit tests.

``ThreadComm`` implements the subset of ``mpi4py.MPI.Comm`` used by the
solver (Isend/Irecv with Test/Wait, Reduce, gather, Barrier, Abort) so
several ranks can run as threads inside one pytest process.
"""

import queue
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest
from mpi4py import MPI


class AbortCalled(Exception):
    """Raised by ThreadComm.Abort in place of killing the process."""

    def __init__(self, errorcode):
        super().__init__(f"Abort({errorcode})")
        self.errorcode = errorcode


class _World:
    def __init__(self, size, timeout=30.0):
        self.size = size
        self._boxes = defaultdict(queue.Queue)
        self._lock = threading.Lock()
        self.barrier = threading.Barrier(size, timeout=timeout)
        self.slots = [None] * size

    def box(self, src, dst, tag):
        with self._lock:
            return self._boxes[(src, dst, tag)]


class _SendRequest:
    def Test(self):
        return True

    def Wait(self):
        pass


class _RecvRequest:
    def __init__(self, box, buf):
        self.box = box
        self.buf = buf
        self.done = False

    def _deliver(self, data):
        self.buf[...] = data.reshape(self.buf.shape)
        self.done = True

    def Test(self):
        if not self.done:
            try:
                self._deliver(self.box.get_nowait())
            except queue.Empty:
                return False
        return True

    def Wait(self):
        if not self.done:
            self._deliver(self.box.get())


class ThreadComm:
    """One rank's view of an in-memory world."""

    def __init__(self, world, rank):
        self.world = world
        self.rank = rank
        self.sent = []  # (dest, tag, copy of payload)

    def Get_rank(self):
        return self.rank

    def Get_size(self):
        return self.world.size

    def Isend(self, buf, dest, tag=0):
        payload = np.array(buf, copy=True)
        self.sent.append((dest, tag, payload))
        self.world.box(self.rank, dest, tag).put(payload)
        return _SendRequest()

    def Irecv(self, buf, source, tag=0):
        return _RecvRequest(self.world.box(source, self.rank, tag), buf)

    def _exchange_slots(self, value):
        self.world.slots[self.rank] = value
        self.world.barrier.wait()
        values = list(self.world.slots)
        self.world.barrier.wait()
        return values

    def Reduce(self, sendbuf, recvbuf, op=MPI.SUM, root=0):
        values = self._exchange_slots(np.array(sendbuf, copy=True))
        if self.rank == root:
            combine = np.maximum if op == MPI.MAX else np.add
            total = values[0].copy()
            for v in values[1:]:
                total = combine(total, v)
            recvbuf[...] = total

    def gather(self, obj, root=0):
        values = self._exchange_slots(obj)
        return values if self.rank == root else None

    def Barrier(self):
        self.world.barrier.wait()

    def Abort(self, errorcode=0):
        raise AbortCalled(errorcode)


def make_comms(size):
    world = _World(size)
    return [ThreadComm(world, r) for r in range(size)]


def run_spmd(size, fn):
    """Run ``fn(comm)`` on ``size`` thread-ranks; results in rank order."""
    comms = make_comms(size)
    if size == 1:
        return [fn(comms[0])]
    with ThreadPoolExecutor(max_workers=size) as pool:
        futures = [pool.submit(fn, comm) for comm in comms]
        return [f.result() for f in futures]


@pytest.fixture
def spmd():
    """Fixture form of run_spmd."""
    return run_spmd


@pytest.fixture
def comms():
    """Factory for unconnected-thread communicators of a given world size."""
    return make_comms
