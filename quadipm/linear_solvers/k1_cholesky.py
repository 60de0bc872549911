"""Normal equations (K1) solved with a sparse LDL^T factorization."""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import numpy.typing as npt
import qdldl
from scipy import sparse

from ..iterate import Point
from ..kkt import Regularization, assemble_k1
from ..model import QPData
from ..numerical_helpers import solve_diagonal
from .base import PreallocatedData, SolverParams, check_finite


@dataclass
class K1CholeskyParams(SolverParams):
    """Parameters of the normal equations solver.

    Only applicable when Q is diagonal, which includes linear programs.

    Parameters
    ----------
     uplo : str, default="U"
        Unused; the normal equations are formed explicitly.
     rho, delta : float, optional
        Initial regularization. Defaults to values based on the precision.
     max_attempts : int, default=5
        Number of factorizations attempted per refresh before giving up.

    """

    uplo: str = "U"
    rho: Optional[float] = None
    delta: Optional[float] = None
    max_attempts: int = 5

    def initialize(self, data: QPData, pt: Point) -> "K1CholeskyData":
        """Form the normal equations and factorize them."""
        if not data.q_is_diagonal:
            raise ValueError("K1CholeskyParams requires a diagonal Q.")

        regu = Regularization.for_dtype(data.dtype, rho=self.rho, delta=self.delta)
        pad = K1CholeskyData(data.A, regu, self.max_attempts)
        pad.factorize_with_retries(data, pt)
        return pad


class K1CholeskyData(PreallocatedData):
    r"""Working memory of the normal equations solver.

    Notes
    -----
    The K2 system
           _                _   _    _     _    _
          | -H        A^T    | | dx   |   | r1   |
          |  A      delta I  | | dy   | = | r2   |
           -                -   -    -     -    -
    with H = Q + rho * I + D diagonal is equivalent to:
        (A * H^{-1} * A^T + delta * I) * dy = r2 + A * H^{-1} * r1
                                         dx = H^{-1} * (A^T * dy - r1).
    The first system is positive definite, so its LDL^T factorization (a square-root
    free Cholesky factorization) exists and D is positive. The pattern of the normal
    equations does not depend on the iterate, so the ordering and elimination tree
    computed by the first factorization are reused.

    Snapshots only hold the right hand sides: they belong to the K2 system, which this
    solver never forms.

    """

    def __init__(self, A: object, regu: Regularization, max_attempts: int) -> None:
        super().__init__(regu, max_attempts)
        self.A = A
        self._N = None
        self._h: Optional[npt.NDArray] = None
        self._solver: Optional[qdldl.Solver] = None
        self._nnz = 0

    def update(self, data: QPData, pt: Point) -> None:
        """Form the normal equations at pt."""
        self.A = data.A
        self._N, self._h = assemble_k1(data, pt, self.regu)

    def factorize(self) -> bool:
        """LDL^T factorization of the normal equations."""
        if self._N.shape[0] == 0:
            self._solver = None
            return True

        N = sparse.triu(self._N, format="csc").astype(np.float64)
        if not np.all(np.isfinite(N.data)):
            return False

        try:
            if self._solver is None or N.nnz != self._nnz:
                self._solver = qdldl.Solver(N, upper=True)
                self._nnz = N.nnz
            else:
                self._solver.update(N, upper=True)
        except (RuntimeError, ValueError):
            self._solver = None
            return False
        return True

    def solve_in_place(self, rhs: npt.NDArray, step: str) -> npt.NDArray:
        """Solve the K2 system through the normal equations."""
        n = self._h.shape[0]
        r1 = rhs[:n]
        r2 = rhs[n:]
        if self._solver is None:
            dy = np.zeros_like(r2)
        else:
            dy = self._solver.solve(
                np.asarray(r2 + self.A @ solve_diagonal(r1, self._h), dtype=np.float64)
            ).astype(r2.dtype)
        dx = solve_diagonal(self.A.T @ dy - r1, self._h)

        check_finite(dx, step)
        check_finite(dy, step)
        rhs[:n] = dx
        rhs[n:] = dy
        return rhs
