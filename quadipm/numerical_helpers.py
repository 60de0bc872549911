"""Numerical linear algebra routines."""

import numpy as np
import numpy.typing as npt

from .exceptions import FactorizationError


def solve_diagonal(b: npt.NDArray, eta: npt.NDArray) -> npt.NDArray:
    """Solve H * x = b.

    Solves a linear system of equations where H is diagonal,
       H = diag(eta).
    Because of this structure, we can solve the system in linear time.

    Parameters
    ----------
     b : npt.NDArray
        Right hand side. Can be either a vector or a matrix, in which case we solve the
        system for each column of b.
     eta : npt.NDArray
        Diagonal elements of H.

    Returns
    -------
     x : npt.NDArray
        The solution.

    """
    if not np.all(eta > 0):
        raise FactorizationError("Diagonal is not strictly positive.")

    if b.ndim == 1:
        if b.shape != eta.shape:
            raise ValueError("b and eta must have the same length.")
        return b / eta
    elif b.ndim == 2:
        if b.shape[0] != eta.shape[0]:
            raise ValueError("Number of rows in b must match length of eta.")
        return b / eta[:, np.newaxis]
    else:
        raise ValueError("b must be either a 1D or 2D NumPy array.")


def max_step_length(v: npt.NDArray, dv: npt.NDArray, cap: float = 1.0) -> float:
    """Largest alpha in [0, cap] such that v + alpha * dv >= 0.

    Parameters
    ----------
     v : npt.NDArray
        Strictly positive vector.
     dv : npt.NDArray
        Direction.
     cap : float, default=1.0
        Upper bound on the step length. May be np.inf.

    Returns
    -------
     alpha : float
        The step length.

    """
    decreasing = dv < 0
    if not np.any(decreasing):
        return cap
    return min(cap, float(np.min(-v[decreasing] / dv[decreasing])))
