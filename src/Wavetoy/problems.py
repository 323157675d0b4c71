"""Initial conditions for the wave equation test problems."""

from functools import partial

import numpy as np

from .datastructures import GlobalDomain


def create_grid_2d(domain: GlobalDomain):
    """Physical meshgrid (X, Y) of the full grid including boundary points.

    Shape is ``(nx + 2, ny + 2)``; index 0 and ``n + 1`` are the boundary.
    """
    x = domain.x_min + np.arange(domain.nx + 2) * domain.dx
    y = domain.y_min + np.arange(domain.ny + 2) * domain.dy
    return np.meshgrid(x, y, indexing="ij")


def gaussian(X: np.ndarray, Y: np.ndarray, width: float = 0.01) -> np.ndarray:
    """Gaussian pulse centred at the origin: exp(-(x^2 + y^2) / width)."""
    return np.exp(-(X * X) / width - (Y * Y) / width)


def gaussian_initial_condition(width: float = 0.01):
    """Return ``f(X, Y)`` for a Gaussian of the given width."""
    return partial(gaussian, width=width)


def setup_gaussian_problem(domain: GlobalDomain, width: float = 0.01) -> np.ndarray:
    """Global initial field with zero Dirichlet boundary, shape (nx+2, ny+2)."""
    X, Y = create_grid_2d(domain)
    u0 = np.zeros((domain.nx + 2, domain.ny + 2))
    u0[1:-1, 1:-1] = gaussian(X[1:-1, 1:-1], Y[1:-1, 1:-1], width)
    return u0
