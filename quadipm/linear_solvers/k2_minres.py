"""K2 system solved iteratively with MINRES."""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import numpy.typing as npt
from scipy import sparse
from scipy.sparse.linalg import minres

from ..exceptions import FactorizationError
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

logger = logging.getLogger(__name__)


@dataclass
class K2MINRESParams(SolverParams):
    """Parameters of the MINRES solver.

    Parameters
    ----------
     uplo : str, default="U"
        Triangle of the K2 matrix to store. Only "U" is supported.
     rho, delta : float, optional
        Initial regularization. Defaults to values based on the precision.
     rtol : float, optional
        Relative residual tolerance. Defaults to 0.01 * sqrt(eps).
     maxiter : int, optional
        Maximum number of MINRES iterations per solve. Defaults to 5 * (nvar + ncon).

    """

    uplo: str = "U"
    rho: Optional[float] = None
    delta: Optional[float] = None
    rtol: Optional[float] = None
    maxiter: Optional[int] = None

    def initialize(self, data: QPData, pt: Point) -> "K2MINRESData":
        """Allocate the K2 matrix and the preconditioner."""
        if self.uplo != "U":
            raise ValueError("K2MINRESParams only supports uplo='U'.")

        regu = Regularization.for_dtype(data.dtype, rho=self.rho, delta=self.delta)
        rtol = self.rtol
        if rtol is None:
            rtol = 0.01 * float(np.sqrt(np.finfo(data.dtype).eps))
        maxiter = self.maxiter
        if maxiter is None:
            maxiter = 5 * (data.nvar + data.ncon)

        pad = K2MINRESData(assemble_k2(data, pt, regu), regu, rtol, maxiter)
        pad.factorize_with_retries(data, pt)
        return pad


class K2MINRESData(PreallocatedData):
    """Working memory of the MINRES solver.

    Nothing is factorized: `factorize` rebuilds the symmetric matrix and the
    diagonal preconditioner, diag(1 / |K_ii|), which is positive definite as MINRES
    requires.

    """

    def __init__(
        self, K2: K2System, regu: Regularization, rtol: float, maxiter: int
    ) -> None:
        super().__init__(regu, max_attempts=1)
        self.K2 = K2
        self.rtol = rtol
        self.maxiter = maxiter
        self._K = None
        self._M = None

    @property
    def system(self) -> object:
        """Upper triangle of the K2 matrix."""
        return self.K2.K

    def update(self, data: QPData, pt: Point) -> None:
        """Write the new diagonal into the K2 matrix."""
        update_k2_diagonal(self.K2, data, pt, self.regu)

    def factorize(self) -> bool:
        """Rebuild the operator and the preconditioner."""
        diag = np.abs(self.K2.K.diagonal())
        if not (np.all(np.isfinite(diag)) and np.all(diag > 0)):
            return False
        self._K = symmetric_full(self.K2)
        self._M = sparse.diags(1.0 / diag)
        return True

    def solve_in_place(self, rhs: npt.NDArray, step: str) -> npt.NDArray:
        """Solve with preconditioned MINRES."""
        sol, info = minres(
            self._K, rhs, rtol=self.rtol, maxiter=self.maxiter, M=self._M
        )
        if info < 0:
            raise FactorizationError(f"MINRES broke down on the {step} system")
        if info > 0:
            logger.warning(
                "MINRES did not reach rtol=%.03g on the %s system in %d iterations",
                self.rtol,
                step,
                info,
            )

        check_finite(sol, step)
        rhs[:] = sol
        return rhs
