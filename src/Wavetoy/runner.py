"""Run the wave solver via mpiexec subprocess."""

import json
import os
import subprocess
import sys
import tempfile
from pathlib import Path

import h5py


def _mpi_env() -> dict:
    """Environment for mpiexec (lets Open MPI oversubscribe and run as root in containers)."""
    env = os.environ.copy()
    env.setdefault("OMPI_MCA_rmaps_base_oversubscribe", "1")
    env.setdefault("OMPI_ALLOW_RUN_AS_ROOT", "1")
    env.setdefault("OMPI_ALLOW_RUN_AS_ROOT_CONFIRM", "1")
    return env


def load_results(path) -> dict:
    """Load config, results, field and rank-0 timings from a result file."""
    with h5py.File(path, "r") as f:
        result = {**dict(f["config"].attrs), **dict(f["results"].attrs)}
        result["field"] = f["fields"]["u"][:]
        for key, dset in f["timings/rank_0"].items():
            result[key] = dset[:]
    return result


def run_solver(nx: int, ny: int, n_ranks: int = 1, output: str = None, timeout: float = 300, **kwargs) -> dict:
    """Run the solver on an nx x ny grid with n_ranks MPI processes.

    Parameters
    ----------
    nx, ny : int
        Grid size (interior points)
    n_ranks : int
        Number of MPI ranks
    output : str, optional
        Path to save HDF5 results (uses temp file if not provided)
    timeout : float
        Seconds before the whole mpiexec job is killed
    **kwargs
        Extra GlobalParams options: nsteps, strategy, communicator,
        halo_timeout, diagnostic_interval, use_numba, ...

    Returns
    -------
    dict
        Results with config, metrics and the global field, or 'error' and
        'returncode' keys on failure
    """
    use_temp = output is None
    if use_temp:
        tmp = tempfile.NamedTemporaryFile(suffix=".h5", delete=False)
        output = tmp.name
        tmp.close()
        Path(output).unlink()

    config = {"nx": nx, "ny": ny, "n_ranks": n_ranks, "output": output, **kwargs}
    cmd = [
        "mpiexec", "-n", str(n_ranks),
        sys.executable, "-m", "Wavetoy.helpers.runner_helper", json.dumps(config),
    ]

    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, env=_mpi_env(), timeout=timeout)
    except subprocess.TimeoutExpired as e:
        return {"error": f"mpiexec timed out after {timeout}s", "stderr": e.stderr, "returncode": None}

    if proc.returncode != 0:
        return {"error": proc.stderr, "stdout": proc.stdout, "returncode": proc.returncode}

    if not Path(output).exists():
        return {"error": "No output file created", "stderr": proc.stderr, "returncode": proc.returncode}

    result = load_results(output)
    result["stdout"] = proc.stdout
    result["stderr"] = proc.stderr
    result["returncode"] = proc.returncode

    if use_temp:
        Path(output).unlink(missing_ok=True)

    return result
