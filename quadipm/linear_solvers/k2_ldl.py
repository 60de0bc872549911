"""K2 system solved with a sparse quasi-definite LDL^T factorization."""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import numpy.typing as npt
import qdldl
from scipy import sparse

from ..iterate import Point
from ..kkt import K2System, Regularization, assemble_k2, update_k2_diagonal
from ..model import QPData
from .base import PreallocatedData, SolverParams, check_finite


@dataclass
class K2LDLParams(SolverParams):
    """Parameters of the default solver.

    Parameters
    ----------
     uplo : str, default="U"
        Triangle of the K2 matrix to store. Only "U" is supported.
     rho : float, optional
        Initial primal regularization. Defaults to a value based on the precision.
     delta : float, optional
        Initial dual regularization. Defaults to a value based on the precision.
     max_attempts : int, default=5
        Number of factorizations attempted per refresh before giving up.

    """

    uplo: str = "U"
    rho: Optional[float] = None
    delta: Optional[float] = None
    max_attempts: int = 5

    def initialize(self, data: QPData, pt: Point) -> "K2LDLData":
        """Allocate the K2 matrix, analyze its pattern and factorize it."""
        if self.uplo != "U":
            raise ValueError("K2LDLParams only supports uplo='U'.")

        regu = Regularization.for_dtype(data.dtype, rho=self.rho, delta=self.delta)
        pad = K2LDLData(assemble_k2(data, pt, regu), regu, self.max_attempts)
        pad.factorize_with_retries(data, pt)
        return pad


class K2LDLData(PreallocatedData):
    """Working memory of the LDL^T solver.

    The K2 matrix is symmetric quasi-definite, so it has an LDL^T factorization with
    diagonal D for any symmetric ordering. The first factorization computes the fill
    reducing ordering and the elimination tree of the upper triangle; later
    factorizations reuse them, since the sparsity pattern never changes. A zero
    pivot, which means the regularization is too small to dominate numerical errors,
    rejects the factorization.

    QDLDL factorizes in double precision. In single precision the K2 matrix is
    assembled and the solution returned in float32.

    """

    def __init__(self, K2: K2System, regu: Regularization, max_attempts: int) -> None:
        super().__init__(regu, max_attempts)
        self.K2 = K2
        self._solver: Optional[qdldl.Solver] = None

    @property
    def system(self) -> object:
        """Upper triangle of the K2 matrix."""
        return self.K2.K

    def update(self, data: QPData, pt: Point) -> None:
        """Write the new diagonal into the K2 matrix."""
        update_k2_diagonal(self.K2, data, pt, self.regu)

    def factorize(self) -> bool:
        """Numeric factorization, with the symbolic analysis done the first time."""
        K = sparse.csc_matrix(self.K2.K, dtype=np.float64)
        if not np.all(np.isfinite(K.data)):
            return False

        try:
            if self._solver is None:
                self._solver = qdldl.Solver(K, upper=True)
            else:
                self._solver.update(K, upper=True)
        except (RuntimeError, ValueError):
            # Zero pivot
            self._solver = None
            return False
        return True

    def solve_in_place(self, rhs: npt.NDArray, step: str) -> npt.NDArray:
        """Solve with the current factorization."""
        sol = self._solver.solve(np.asarray(rhs, dtype=np.float64))
        check_finite(sol, step)
        rhs[:] = sol
        return rhs
