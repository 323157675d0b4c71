"""MPI worker - invoked via: mpiexec -n X python -m Wavetoy.helpers.runner_helper '{config}'"""

import json
import logging
import sys
from dataclasses import fields
from typing import Optional

from mpi4py import MPI

from ..datastructures import GlobalParams
from ..mpi.halo import HaloExchangeTimeout
from ..solvers import WaveMPISolver, WaveSolver

log = logging.getLogger(__name__)


def params_from_config(config: dict) -> GlobalParams:
    """Build GlobalParams from a plain config dict, ignoring unknown keys."""
    known = {f.name for f in fields(GlobalParams) if f.init}
    kwargs = {k: v for k, v in config.items() if k in known}
    try:
        return GlobalParams(**kwargs)
    except TypeError as e:
        raise ValueError(f"Invalid configuration: {e}") from e


def create_solver(params: GlobalParams, comm: Optional[MPI.Comm] = None):
    """Sequential solver without a communicator, MPI solver otherwise."""
    common = dict(
        use_numba=params.use_numba,
        numba_threads=params.specified_numba_threads,
        width=params.width,
        diagnostic_interval=params.diagnostic_interval,
    )
    domain = params.to_domain()

    if comm is None:
        return WaveSolver(domain, **common)
    return WaveMPISolver(
        domain,
        comm=comm,
        strategy=params.strategy,
        communicator=params.communicator,
        halo_timeout=params.halo_timeout,
        **common,
    )


def log_banner(solver):
    """Run banner (rank 0)."""
    d = solver.domain
    topo = solver.topology
    log.info("-" * 72)
    log.info("Starting Wavetoy-MPI")
    log.info("-" * 72)
    log.info(f"   | Number of points along x = {d.nx}")
    log.info(f"   | Number of points along y = {d.ny}")
    log.info(f"   | Number of procs along x  = {topo.nxprocs}")
    log.info(f"   | Number of procs along y  = {topo.nyprocs}")
    log.info(f"   | Steps = {d.nsteps}, dt = {d.dt:.4e}, Courant = {d.courant_number():.3f}")


def run_worker(params: GlobalParams, comm: Optional[MPI.Comm] = None, output: Optional[str] = None):
    """Run one rank of the SPMD program.

    Configuration and communication failures abort every rank with exit
    code 1. Returns the solver on success.
    """
    comm = MPI.COMM_WORLD if comm is None else comm
    rank, size = comm.Get_rank(), comm.Get_size()

    try:
        solver = create_solver(params, comm)
    except ValueError as e:
        # PartitionError and other configuration errors are detected
        # identically on every rank; only rank 0 reports them
        if rank == 0:
            log.error(f"ERROR: {e}")
        comm.Abort(1)
        return None

    if rank == 0:
        log_banner(solver)

    try:
        solver.warmup()
        solver.solve()
    except HaloExchangeTimeout as e:
        log.error(f"ERROR: {e}")
        comm.Abort(1)
        return None

    if output:
        solver.save_hdf5(output)

    if rank == 0:
        log.info(f"-- Sum = {solver.metrics.global_sum:g}, integral = {solver.metrics.integral:g}")
        log.info("-- All done. Exiting MPI environment.")
    log.info(f"Process {rank + 1} of {size} finished.")
    return solver


def main(argv=None):
    """Entry point for mpiexec."""
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

    config = json.loads(argv[0])
    params = params_from_config(config)
    solver = run_worker(params, MPI.COMM_WORLD, output=config.get("output"))

    if solver is not None and MPI.COMM_WORLD.Get_rank() == 0:
        # runner.py reads the HDF5 file
        print(f"RESULT:{config.get('output')}")


if __name__ == "__main__":
    main()
