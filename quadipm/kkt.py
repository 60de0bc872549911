r"""Regularized KKT systems.

The Newton step of the interior point method solves the augmented (K2) system:
     _                                _   _    _     _    _
    | -(Q + rho I + D)      A^T        | | dx   |   | r1   |
    |                                  | |      | = |      |,
    |_        A           delta I     _| |_ dy _|   |_ r2 _|
where D = diag(s_l / (x - lvar)) + diag(s_u / (uvar - x)) restricted to the finite
bounds. Since Q is positive semidefinite and rho, delta > 0, the matrix is symmetric
quasi-definite: its top-left block is negative definite and its bottom-right block is
positive definite. Quasi-definite matrices are strongly factorizable, that is an
LDL^T factorization exists for any symmetric permutation, with exactly nvar negative
and ncon positive pivots.

When Q is diagonal we can instead eliminate dx and solve the normal equations (K1):
    (A H^{-1} A^T + delta I) dy = r2 + A H^{-1} r1,   H = Q + rho I + D,
then recover dx = H^{-1} (A^T dy - r1).

"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import numpy.typing as npt
from scipy import sparse

from .exceptions import DimensionMismatch
from .iterate import Point, bound_distances
from .model import QPData


@dataclass
class Regularization:
    """Primal (rho) and dual (delta) regularization.

    Both parameters are strictly positive at all times: `decay` never goes below the
    minimums, which are themselves positive, and `bump` multiplies by a factor > 1.

    """

    rho: float
    delta: float
    rho_min: float
    delta_min: float

    @classmethod
    def for_dtype(
        cls,
        dtype: npt.DTypeLike,
        rho: Optional[float] = None,
        delta: Optional[float] = None,
    ) -> "Regularization":
        """Default regularization for a floating point precision."""
        sqrt_eps = float(np.sqrt(np.finfo(dtype).eps))
        rho = 1e3 * sqrt_eps if rho is None else float(rho)
        delta = 1e3 * sqrt_eps if delta is None else float(delta)
        if rho <= 0.0 or delta <= 0.0:
            raise ValueError("Regularization parameters must be strictly positive.")

        return cls(
            rho=rho,
            delta=delta,
            rho_min=min(10.0 * sqrt_eps, rho),
            delta_min=min(10.0 * sqrt_eps, delta),
        )

    def decay(self, factor: float = 10.0) -> None:
        """Decrease regularization between iterations."""
        self.rho = max(self.rho / factor, self.rho_min)
        self.delta = max(self.delta / factor, self.delta_min)

    def bump(self, factor: float = 100.0) -> None:
        """Increase regularization after a failed factorization."""
        if factor <= 1.0:
            raise ValueError("factor must be > 1.")
        self.rho *= factor
        self.delta *= factor


@dataclass
class K2System:
    """Upper triangle of the K2 matrix.

    Parameters
    ----------
     K : sparse matrix
        Upper triangle of the K2 matrix, CSC with sorted indices. Every diagonal entry
        is stored explicitly, so the sparsity pattern does not depend on the iterate.
     diag_idx : integer vector
        Position of each diagonal entry in K.data.
     nvar, ncon : int
        Block sizes.

    """

    K: sparse.csc_matrix
    diag_idx: npt.NDArray[np.int64]
    nvar: int
    ncon: int


def bound_ratio(data: QPData, pt: Point) -> npt.NDArray:
    """Calculate s_l / (x - lvar) + s_u / (uvar - x), zero for free variables."""
    x_m_lvar, uvar_m_x = bound_distances(data, pt.x)
    ratio = np.zeros(data.nvar, dtype=pt.x.dtype)
    ratio[data.ilow] += pt.s_l / x_m_lvar
    ratio[data.iupp] += pt.s_u / uvar_m_x
    return ratio


def assemble_k2(data: QPData, pt: Point, regu: Regularization) -> K2System:
    """Build the upper triangle of the regularized K2 matrix.

    Parameters
    ----------
     data : QPData
        The problem.
     pt : Point
        Current iterate, used for the diagonal.
     regu : Regularization
        Current regularization.

    Returns
    -------
     system : K2System
        The assembled system.

    Raises
    ------
     DimensionMismatch
        If the Jacobian column count disagrees with the Hessian size.

    """
    n, m = data.Q.shape[0], data.A.shape[0]
    if data.A.shape[1] != n:
        raise DimensionMismatch(
            f"Dimension mismatch: A has {data.A.shape[1]} columns but Q is "
            f"{n}-by-{n}."
        )

    Q_upper = sparse.triu(data.Q, k=1, format="coo")
    A_coo = data.A.tocoo()
    rows = np.concatenate([Q_upper.row, A_coo.col, np.arange(n + m)])
    cols = np.concatenate([Q_upper.col, n + A_coo.row, np.arange(n + m)])
    # Diagonal placeholders are overwritten below; they must be nonzero so that no
    # sparse operation prunes them.
    vals = np.concatenate(
        [-Q_upper.data, A_coo.data, np.ones(n + m, dtype=data.dtype)]
    )
    K = sparse.csc_matrix((vals, (rows, cols)), shape=(n + m, n + m), dtype=data.dtype)
    K.sum_duplicates()
    K.sort_indices()

    # In an upper triangular CSC matrix with sorted indices, the diagonal entry is
    # the last one stored in each column.
    diag_idx = K.indptr[1:] - 1
    assert np.all(K.indices[diag_idx] == np.arange(n + m))

    system = K2System(K=K, diag_idx=diag_idx, nvar=n, ncon=m)
    update_k2_diagonal(system, data, pt, regu)
    return system


def update_k2_diagonal(
    system: K2System, data: QPData, pt: Point, regu: Regularization
) -> None:
    """Overwrite the diagonal of the K2 matrix in place."""
    n = system.nvar
    top = -data.Q.diagonal() - regu.rho - bound_ratio(data, pt)
    system.K.data[system.diag_idx[:n]] = top
    system.K.data[system.diag_idx[n:]] = regu.delta


def symmetric_full(system: K2System) -> sparse.csc_matrix:
    """Full symmetric K2 matrix from its upper triangle."""
    K = system.K
    return sparse.csc_matrix(K + K.T - sparse.diags(K.diagonal()))


def assemble_k1(
    data: QPData, pt: Point, regu: Regularization
) -> Tuple[sparse.csc_matrix, npt.NDArray]:
    """Build the regularized normal equations.

    Parameters
    ----------
     data : QPData
        The problem. Q must be diagonal.
     pt : Point
        Current iterate.
     regu : Regularization
        Current regularization.

    Returns
    -------
     N : sparse matrix
        A * H^{-1} * A^T + delta * I.
     h : vector
        Diagonal of H = Q + rho * I + D.

    """
    if data.A.shape[1] != data.Q.shape[0]:
        raise DimensionMismatch(
            f"Dimension mismatch: A has {data.A.shape[1]} columns but Q is "
            f"{data.Q.shape[0]}-by-{data.Q.shape[0]}."
        )
    if not data.q_is_diagonal:
        raise ValueError("Normal equations require a diagonal Q.")

    h = data.Q.diagonal() + regu.rho + bound_ratio(data, pt)
    A = data.A
    N = A @ sparse.diags(1.0 / h) @ A.T + regu.delta * sparse.identity(
        A.shape[0], dtype=data.dtype
    )
    return sparse.csc_matrix(N, dtype=data.dtype), h
