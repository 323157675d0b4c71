"""
Unified Solver Runner - runs the sequential or MPI wave solver based on n_ranks.

Usage:
    python run_solver.py nx=200 ny=200 nsteps=100
    python run_solver.py n_ranks=4 strategy=auto communicator=custom
    python run_solver.py n_ranks=2,4,8 --multirun
"""

import logging
import os
import subprocess
import sys
from pathlib import Path

import hydra
from omegaconf import DictConfig, OmegaConf

log = logging.getLogger(__name__)

# Config keys forwarded to the MPI subprocess
_FORWARDED_KEYS = [
    "nx", "ny", "nsteps", "c", "cfl", "width", "n_ranks", "strategy", "communicator",
    "halo_timeout", "diagnostic_interval", "use_numba", "specified_numba_threads",
    "experiment_name", "output", "mlflow.mode",
]

# Marks keys absent from the config (as opposed to explicit nulls)
_MISSING = object()


def _get_hardware_info() -> dict:
    """Get hostname and CPU model for current process."""
    import platform
    import socket as sock

    return {"hostname": sock.gethostname(), "cpu_model": platform.processor() or "unknown"}


def _params_from_cfg(cfg: DictConfig):
    from Wavetoy.helpers.runner_helper import params_from_config

    return params_from_config(OmegaConf.to_container(cfg, resolve=True))


def _log_results(cfg: DictConfig, solver, params, hw_info: list = None):
    """Log solver results to MLflow (rank 0 only)."""
    import numpy as np
    from utils.mlflow.io import (
        run_context, setup_mlflow_tracking, log_parameters, log_metrics_dict, log_timeseries_metrics,
        log_artifact_file,
    )

    enabled = setup_mlflow_tracking(mode=cfg.mlflow.mode)
    n_ranks = params.n_ranks
    run_name = f"wave_{params.nx}x{params.ny}_p{n_ranks}" + (f"_{params.strategy}" if n_ranks > 1 else "")

    with run_context(enabled, experiment_name=params.experiment_name,
                     parent_run_name=f"{params.nx}x{params.ny}", child_run_name=run_name):
        if enabled:
            log_parameters(params.to_mlflow())
            if hasattr(solver, "local_shape"):
                log_parameters({"local_volume": int(np.prod(solver.local_shape)),
                                "halo_size_mb": solver.halo_size_mb,
                                "nxprocs": solver.topology.nxprocs, "nyprocs": solver.topology.nyprocs})
            log_metrics_dict(solver.metrics.to_mlflow())

            if hw_info:
                import mlflow
                import pandas as pd

                hw_df = pd.DataFrame(hw_info)
                mlflow.log_table(hw_df, artifact_file="hardware.json")
                log_parameters({"nodes": hw_df["hostname"].nunique()})

            if solver.timeseries.halo_times:
                halo = np.array(solver.timeseries.halo_times) * 1e6
                log_metrics_dict({f"halo_time_{k}_us": float(fn(halo)) for k, fn in
                                  [("mean", np.mean), ("std", np.std), ("min", np.min), ("max", np.max)]})

            log_timeseries_metrics(solver.timeseries)

            if cfg.get("output"):
                log_artifact_file(Path(cfg.output))

    m = solver.metrics
    log.info(f"Done: {m.nsteps} steps, sum={m.global_sum:.6e}, time={m.wall_time:.3f}s"
             + (f", {m.mlups:.1f} Mlup/s" if m.mlups else ""))


@hydra.main(config_path="Experiments/hydra-conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Entry point - runs sequential or spawns MPI based on n_ranks."""
    n_ranks = cfg.get("n_ranks", 1)
    log.info(f"wave, {cfg.nx}x{cfg.ny}, nsteps={cfg.nsteps}, n_ranks={n_ranks}")

    if n_ranks == 1:
        _run_sequential(cfg)
    else:
        _spawn_mpi(cfg, n_ranks)


def _run_sequential(cfg: DictConfig):
    """Run sequential solver."""
    from Wavetoy.helpers.runner_helper import create_solver, log_banner

    params = _params_from_cfg(cfg)
    solver = create_solver(params)
    log_banner(solver)
    solver.warmup()
    solver.solve()
    if cfg.get("output"):
        solver.save_hdf5(cfg.output)
    _log_results(cfg, solver, params)


def _mpi_command(cfg: DictConfig, n_ranks: int) -> list:
    """mpiexec command re-running this file with the config as key=value args."""
    mpi = cfg.get("mpi", {})
    cmd = ["mpiexec", "-n", str(n_ranks)]
    if mpi.get("bind_to"):
        cmd.extend(["--report-bindings", "--bind-to", str(mpi.bind_to)])
    cmd.extend([sys.executable, os.path.abspath(__file__)])

    # Explicit nulls are forwarded (halo_timeout: null disables the timeout)
    for key in _FORWARDED_KEYS:
        val = OmegaConf.select(cfg, key, default=_MISSING)
        if val is _MISSING:
            continue
        cmd.append(f"{key}=null" if val is None else f"{key}={val}")
    return cmd


def _spawn_mpi(cfg: DictConfig, n_ranks: int):
    """Spawn MPI subprocess running this file."""
    mpi = cfg.get("mpi", {})
    env = os.environ.copy()
    env["MPI_SUBPROCESS"] = "1"
    cmd = _mpi_command(cfg, n_ranks)

    result = subprocess.run(cmd, capture_output=True, text=True, env=env, timeout=mpi.get("timeout", 3600))
    for line in (result.stdout or "").strip().split("\n"):
        if line:
            log.info(line)
    for line in (result.stderr or "").strip().split("\n"):
        if line:
            log.warning(line) if "error" in line.lower() else log.info(line)

    if result.returncode != 0:
        log.error(f"MPI run failed with exit code {result.returncode}")
        sys.exit(result.returncode)


def _parse_value(val: str):
    """Parse a key=value argument value (bool, None, int, float or str)."""
    lowered = val.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in ("none", "null"):
        return None
    try:
        return int(val)
    except ValueError:
        pass
    try:
        return float(val)
    except ValueError:
        return val


def _config_from_args(args: list) -> DictConfig:
    """Rebuild the config from key=value args (dotted keys nest)."""
    cfg_dict = {}
    for arg in args:
        if "=" in arg and not arg.startswith("-"):
            key, val = arg.split("=", 1)
            d = cfg_dict
            for k in key.split(".")[:-1]:
                d = d.setdefault(k, {})
            d[key.split(".")[-1]] = _parse_value(val)
    return OmegaConf.create(cfg_dict)


def _run_mpi_solver(cfg: DictConfig, comm):
    """Run MPI solver (called within mpiexec subprocess)."""
    from Wavetoy.helpers.runner_helper import run_worker

    rank = comm.Get_rank()
    hw_info = _get_hardware_info()
    hw_info["rank"] = rank
    all_hw = comm.gather(hw_info, root=0)

    params = _params_from_cfg(cfg)
    solver = run_worker(params, comm, output=cfg.get("output"))

    if rank == 0 and solver is not None:
        _log_results(cfg, solver, params, all_hw)


if __name__ == "__main__":
    if os.environ.get("MPI_SUBPROCESS"):
        from mpi4py import MPI

        logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

        _run_mpi_solver(_config_from_args(sys.argv[1:]), MPI.COMM_WORLD)
    else:
        main()
