r"""Quadratic models and their standard form.

A quadratic model describes the problem:
    minimize    c^T x + (1/2) x^T Q x + c0
    subject to  lcon <= A x <= ucon
                lvar <=   x <= uvar.

The interior point method works on the standard form:
    minimize    c^T x + (1/2) x^T Q x + c0
    subject to  A x = b
                lvar <= x <= uvar,
obtained by adding one slack variable per row with lcon < ucon, and one equality row
per fixed variable (lvar == uvar).

"""

import dataclasses
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import numpy.typing as npt
from scipy import sparse

from .exceptions import DimensionMismatch


@dataclass
class QuadraticModel:
    """Convex quadratic program supplied by the caller.

    Parameters
    ----------
     c : vector of length n
        Linear cost.
     Q : n-by-n matrix, optional
        Hessian of the objective, dense or scipy sparse. Either the full symmetric
        matrix or just one triangle. Must be positive semidefinite. Defaults to zero.
     A : m-by-n matrix, optional
        Constraint Jacobian, dense or scipy sparse. Defaults to no constraints.
     lcon, ucon : vectors of length m, optional
        Constraint bounds. Defaults to -inf and +inf.
     lvar, uvar : vectors of length n, optional
        Variable bounds. Defaults to -inf and +inf.
     c0 : float, optional
        Constant term of the objective.
     name : str, optional
        Name of the problem.

    """

    c: npt.ArrayLike
    Q: Optional[object] = None
    A: Optional[object] = None
    lcon: Optional[npt.ArrayLike] = None
    ucon: Optional[npt.ArrayLike] = None
    lvar: Optional[npt.ArrayLike] = None
    uvar: Optional[npt.ArrayLike] = None
    c0: float = 0.0
    name: str = "QM"

    @property
    def nvar(self) -> int:
        """Count variables."""
        return int(np.asarray(self.c).shape[0])

    @property
    def ncon(self) -> int:
        """Count constraints."""
        if self.A is None:
            return 0
        return int(self.A.shape[0])


@dataclass(frozen=True)
class QPData:
    """Standard form problem consumed by the interior point method.

    Parameters
    ----------
     Q : sparse matrix
        Full symmetric Hessian, CSC.
     A : sparse matrix
        Equality constraint matrix, CSR.
     b, c : vectors
        Right hand side and linear cost.
     c0 : float
        Constant term of the objective.
     lvar, uvar : vectors
        Variable bounds (possibly infinite).
     ilow, iupp : integer vectors
        Indices of finite lower and upper bounds.
     nvar_orig, ncon_orig : int
        Size of the user's problem.
     ifix : integer vector
        Variables of the user's problem that were fixed.
     iineq : integer vector
        Rows of the user's problem that received a slack variable.

    """

    Q: sparse.csc_matrix
    A: sparse.csr_matrix
    b: npt.NDArray
    c: npt.NDArray
    c0: float
    lvar: npt.NDArray
    uvar: npt.NDArray
    ilow: npt.NDArray[np.int64]
    iupp: npt.NDArray[np.int64]
    nvar_orig: int
    ncon_orig: int
    ifix: npt.NDArray[np.int64]
    iineq: npt.NDArray[np.int64]

    @property
    def nvar(self) -> int:
        """Count standard form variables."""
        return self.c.shape[0]

    @property
    def ncon(self) -> int:
        """Count standard form equality constraints."""
        return self.b.shape[0]

    @property
    def nlow(self) -> int:
        """Count finite lower bounds."""
        return self.ilow.shape[0]

    @property
    def nupp(self) -> int:
        """Count finite upper bounds."""
        return self.iupp.shape[0]

    @property
    def dtype(self) -> np.dtype:
        """Floating point type of the data."""
        return self.c.dtype

    @property
    def q_is_zero(self) -> bool:
        """Whether the problem is a linear program."""
        return self.Q.count_nonzero() == 0

    @property
    def q_is_diagonal(self) -> bool:
        """Whether Q has no off-diagonal entries."""
        return sparse.triu(self.Q, k=1).count_nonzero() == 0

    def astype(self, dtype: npt.DTypeLike) -> "QPData":
        """Copy the data at another floating point precision."""
        return dataclasses.replace(
            self,
            Q=self.Q.astype(dtype),
            A=self.A.astype(dtype),
            b=self.b.astype(dtype),
            c=self.c.astype(dtype),
            lvar=self.lvar.astype(dtype),
            uvar=self.uvar.astype(dtype),
        )


def _as_vector(
    v: Optional[npt.ArrayLike], n: int, fill: float, name: str
) -> npt.NDArray[np.float64]:
    if v is None:
        return np.full(n, fill)

    v = np.asarray(v, dtype=np.float64).ravel()
    if v.shape[0] != n:
        raise DimensionMismatch(
            f"Dimension mismatch: {name} has length {v.shape[0]}; expected {n}."
        )
    return v


def _symmetrize(Q: sparse.csc_matrix) -> sparse.csc_matrix:
    """Return the full symmetric matrix represented by Q.

    Q may be symmetric already, or be one triangle of a symmetric matrix.

    """
    if abs(Q - Q.T).max() == 0.0:
        return Q

    if sparse.triu(Q, k=1).count_nonzero() == 0 or sparse.tril(
        Q, k=-1
    ).count_nonzero() == 0:
        return sparse.csc_matrix(Q + Q.T - sparse.diags(Q.diagonal()))

    raise ValueError("Q must be symmetric or triangular.")


def to_standard_form(qm: QuadraticModel) -> QPData:
    """Convert a quadratic model to standard form.

    Parameters
    ----------
     qm : QuadraticModel
        The problem.

    Returns
    -------
     data : QPData
        Equivalent problem with equality constraints only, in double precision.

    Raises
    ------
     DimensionMismatch
        If the Jacobian column count disagrees with the Hessian size or a bound
        vector has the wrong length.
     ValueError
        If a lower bound exceeds the corresponding upper bound.

    """
    c = np.asarray(qm.c, dtype=np.float64).ravel()
    n = c.shape[0]
    if n == 0:
        raise DimensionMismatch("Dimension mismatch: problem has no variables.")

    if qm.Q is None:
        Q = sparse.csc_matrix((n, n))
    else:
        Q = sparse.csc_matrix(qm.Q, dtype=np.float64)
    if Q.shape != (n, n):
        raise DimensionMismatch(
            f"Dimension mismatch: {Q.shape=:}; expected ({n}, {n})."
        )
    Q = _symmetrize(Q)

    if qm.A is None:
        A = sparse.csr_matrix((0, n))
    else:
        A = sparse.csr_matrix(qm.A, dtype=np.float64)
    m, n_A = A.shape
    if n_A != n:
        raise DimensionMismatch(
            f"Dimension mismatch: A has {n_A} columns but Q is {n}-by-{n}."
        )

    lcon = _as_vector(qm.lcon, m, -np.inf, "lcon")
    ucon = _as_vector(qm.ucon, m, np.inf, "ucon")
    lvar = _as_vector(qm.lvar, n, -np.inf, "lvar")
    uvar = _as_vector(qm.uvar, n, np.inf, "uvar")
    if np.any(lcon > ucon):
        raise ValueError("Some constraint lower bound exceeds its upper bound.")
    if np.any(lvar > uvar):
        raise ValueError("Some variable lower bound exceeds its upper bound.")

    ieq = np.flatnonzero(lcon == ucon)
    iineq = np.flatnonzero(lcon != ucon)
    ifix = np.flatnonzero(lvar == uvar)
    n_slack = iineq.shape[0]
    n_std = n + n_slack

    # Inequality rows become A_i x - s_i = 0 with lcon_i <= s_i <= ucon_i, and fixed
    # variables become rows x_j = lvar_j.
    A_coo = A.tocoo()
    A_std = sparse.csr_matrix(
        (
            np.concatenate([A_coo.data, -np.ones(n_slack), np.ones(ifix.shape[0])]),
            (
                np.concatenate([A_coo.row, iineq, m + np.arange(ifix.shape[0])]),
                np.concatenate([A_coo.col, n + np.arange(n_slack), ifix]),
            ),
        ),
        shape=(m + ifix.shape[0], n_std),
    )

    b = np.zeros(m)
    b[ieq] = lcon[ieq]
    b = np.concatenate([b, lvar[ifix]])

    lvar_std = np.concatenate([lvar, lcon[iineq]])
    uvar_std = np.concatenate([uvar, ucon[iineq]])
    lvar_std[ifix] = -np.inf
    uvar_std[ifix] = np.inf

    Q_coo = Q.tocoo()
    Q_std = sparse.csc_matrix(
        (Q_coo.data, (Q_coo.row, Q_coo.col)), shape=(n_std, n_std)
    )

    return QPData(
        Q=Q_std,
        A=A_std,
        b=b,
        c=np.concatenate([c, np.zeros(n_slack)]),
        c0=float(qm.c0),
        lvar=lvar_std,
        uvar=uvar_std,
        ilow=np.flatnonzero(np.isfinite(lvar_std)),
        iupp=np.flatnonzero(np.isfinite(uvar_std)),
        nvar_orig=n,
        ncon_orig=m,
        ifix=ifix,
        iineq=iineq,
    )


def postsolve(
    data: QPData,
    x: npt.NDArray,
    y: npt.NDArray,
    s_l: npt.NDArray,
    s_u: npt.NDArray,
) -> Tuple[npt.NDArray, npt.NDArray, npt.NDArray, npt.NDArray]:
    """Map a standard form solution back to the user's problem.

    Returns
    -------
     x : vector of length n
        Primal solution.
     y : vector of length m
        Constraint multipliers.
     z_l, z_u : vectors of length n
        Multipliers of the lower and upper variable bounds.

    """
    n, m = data.nvar_orig, data.ncon_orig
    z_l = np.zeros(data.nvar, dtype=np.float64)
    z_u = np.zeros(data.nvar, dtype=np.float64)
    z_l[data.ilow] = s_l
    z_u[data.iupp] = s_u
    z_l, z_u = z_l[:n], z_u[:n]

    # Fixed variables were turned into rows whose multiplier acts as the bound dual.
    y_fix = y[m:]
    z_l[data.ifix] = np.maximum(y_fix, 0.0)
    z_u[data.ifix] = np.maximum(-y_fix, 0.0)

    return (
        np.asarray(x[:n], dtype=np.float64),
        np.asarray(y[:m], dtype=np.float64),
        z_l,
        z_u,
    )
