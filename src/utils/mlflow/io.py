"""MLflow I/O utilities for experiment tracking.

This module provides helpers for:
- Setting up MLflow tracking (local or Databricks), or disabling it.
- Orchestrating MLflow runs (context manager for parent/nested runs).
- Logging parameters, metrics, time series and artifacts.
"""

import logging
import os
import time
from contextlib import contextmanager, nullcontext
from dataclasses import asdict
from pathlib import Path

import mlflow

log = logging.getLogger(__name__)

MODES = ("disabled", "local", "databricks")


def setup_mlflow_tracking(mode: str = "local") -> bool:
    """Configure MLflow tracking.

    Parameters
    ----------
    mode : str
        "disabled", "local" (./mlruns) or "databricks".

    Returns
    -------
    bool
        True if runs should be logged.
    """
    if mode == "disabled":
        return False
    elif mode == "databricks":
        try:
            mlflow.login(backend="databricks", interactive=False)
            mlflow.set_tracking_uri("databricks")
            log.info("Connected to Databricks MLflow tracking.")
        except Exception as e:
            raise RuntimeError(
                "MLflow Databricks setup failed. Ensure credentials are configured."
            ) from e
    elif mode == "local":
        mlruns_uri = f"file://{Path.cwd() / 'mlruns'}"
        mlflow.set_tracking_uri(mlruns_uri)
        log.info(f"Using local file-based MLflow tracking backend: {mlruns_uri}")
    else:
        raise ValueError(f"Unknown MLflow mode '{mode}'. Use one of {MODES}.")
    return True


@contextmanager
def start_mlflow_run_context(
    experiment_name: str,
    parent_run_name: str,
    child_run_name: str,
    project_prefix: str = "/Shared/Wavetoy-MPI",
):
    """Context manager to start a child run nested under a named parent run."""
    if mlflow.get_tracking_uri() == "databricks" and not experiment_name.startswith("/"):
        experiment_name = f"{project_prefix}/{experiment_name}"

    exp = mlflow.set_experiment(experiment_name)
    log.info(f"Using MLflow experiment: {experiment_name}")

    client = mlflow.tracking.MlflowClient()
    parent_runs = client.search_runs(
        experiment_ids=[exp.experiment_id],
        filter_string=f"tags.mlflow.runName = '{parent_run_name}' AND tags.is_parent = 'true'",
        max_results=1,
    )
    parent_run_id = parent_runs[0].info.run_id if parent_runs else None

    with mlflow.start_run(run_id=parent_run_id, run_name=parent_run_name, tags={"is_parent": "true"}):
        with mlflow.start_run(run_name=child_run_name, nested=True) as child_run:
            # Tag run with environment (HPC vs local) for easy filtering
            env = "hpc" if os.environ.get("LSB_JOBID") or os.environ.get("SLURM_JOB_ID") else "local"
            mlflow.set_tag("environment", env)
            log.info(f"Started MLflow run '{child_run.info.run_name}' ({child_run.info.run_id}) [{env}]")
            yield child_run


def run_context(enabled: bool, **kwargs):
    """MLflow run context when tracking is enabled, no-op context otherwise."""
    return start_mlflow_run_context(**kwargs) if enabled else nullcontext()


def log_parameters(params: dict):
    """Log a dictionary of parameters to the active MLflow run."""
    mlflow.log_params(params)


def log_metrics_dict(metrics: dict):
    """Log a dictionary of metrics to the active MLflow run, filtering out None values."""
    filtered = {k: v for k, v in metrics.items() if v is not None}
    mlflow.log_metrics(filtered)


def log_timeseries_metrics(timeseries_data: object):
    """Log time series data as step-based metrics to the active MLflow run."""
    if not mlflow.active_run():
        return
    client = mlflow.tracking.MlflowClient()
    run_id = mlflow.active_run().info.run_id
    timestamp = int(time.time() * 1000)

    metrics_to_log = [
        mlflow.entities.Metric(name, float(value), timestamp, step)
        for name, values in asdict(timeseries_data).items()
        for step, value in enumerate(values)
    ]
    for i in range(0, len(metrics_to_log), 1000):
        client.log_batch(run_id=run_id, metrics=metrics_to_log[i : i + 1000], synchronous=True)
    if metrics_to_log:
        log.info(f"Logged {len(metrics_to_log)} time-series metrics.")


def log_artifact_file(filepath: Path):
    """Log a file as an artifact to the active MLflow run."""
    if filepath.exists():
        mlflow.log_artifact(str(filepath))
        log.info(f"Logged artifact: {filepath.name}")
    else:
        log.warning(f"Artifact file not found at {filepath}")
