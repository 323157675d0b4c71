"""Wave equation solvers.

Consistent naming: {Method}Solver for sequential, {Method}MPISolver for parallel.

Sequential (no MPI):
- WaveSolver: Single-process leapfrog solver

Parallel (MPI):
- WaveMPISolver: Leapfrog solver with domain decomposition
"""

from .wave import WaveSolver
from .wave_mpi import WaveMPISolver

__all__ = [
    "WaveSolver",
    "WaveMPISolver",
]
