"""K2 system solved with a sparse LU factorization."""

from dataclasses import dataclass
from typing import Optional

import numpy.typing as npt
from scipy.sparse.linalg import splu

from ..iterate import Point
from ..kkt import (
    K2System,
    Regularization,
    assemble_k2,
    symmetric_full,
    update_k2_diagonal,
)
from ..model import QPData
from .base import PreallocatedData, SolverParams, check_finite


@dataclass
class K2LUParams(SolverParams):
    """Parameters of the sparse LU solver.

    Parameters
    ----------
     uplo : str, default="U"
        Triangle of the K2 matrix to store. Only "U" is supported.
     rho, delta : float, optional
        Initial regularization. Defaults to values based on the precision.
     permc_spec : str, default="MMD_AT_PLUS_A"
        Column ordering passed to SuperLU. The default is a minimum degree ordering of
        A^T + A, suited to symmetric matrices.
     max_attempts : int, default=5
        Number of factorizations attempted per refresh before giving up.

    """

    uplo: str = "U"
    rho: Optional[float] = None
    delta: Optional[float] = None
    permc_spec: str = "MMD_AT_PLUS_A"
    max_attempts: int = 5

    def initialize(self, data: QPData, pt: Point) -> "K2LUData":
        """Allocate the K2 matrix and factorize it."""
        if self.uplo != "U":
            raise ValueError("K2LUParams only supports uplo='U'.")

        regu = Regularization.for_dtype(data.dtype, rho=self.rho, delta=self.delta)
        pad = K2LUData(
            assemble_k2(data, pt, regu), regu, self.max_attempts, self.permc_spec
        )
        pad.factorize_with_retries(data, pt)
        return pad


class K2LUData(PreallocatedData):
    """Working memory of the sparse LU solver.

    SuperLU does not report inertia, so only exactly singular factors are rejected.

    """

    def __init__(
        self,
        K2: K2System,
        regu: Regularization,
        max_attempts: int,
        permc_spec: str,
    ) -> None:
        super().__init__(regu, max_attempts)
        self.K2 = K2
        self.permc_spec = permc_spec
        self._lu = None

    @property
    def system(self) -> object:
        """Upper triangle of the K2 matrix."""
        return self.K2.K

    def update(self, data: QPData, pt: Point) -> None:
        """Write the new diagonal into the K2 matrix."""
        update_k2_diagonal(self.K2, data, pt, self.regu)

    def factorize(self) -> bool:
        """Factorize the symmetrized K2 matrix."""
        try:
            self._lu = splu(symmetric_full(self.K2), permc_spec=self.permc_spec)
        except RuntimeError:
            # Factor is exactly singular
            return False
        return True

    def solve_in_place(self, rhs: npt.NDArray, step: str) -> npt.NDArray:
        """Solve with the current factorization."""
        sol = self._lu.solve(rhs)
        check_finite(sol, step)
        rhs[:] = sol
        return rhs
