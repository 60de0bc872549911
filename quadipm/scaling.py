r"""Equilibration of the problem data.

Badly scaled problems lead to badly conditioned K2 systems. Before iterating we apply
Ruiz equilibration to the matrix
     _           _
    |  Q     A^T  |
    |_ A      0  _|,
repeatedly dividing each row and column by the square root of its infinity norm until
all norms are close to one. With D1 = diag(d1) acting on the variables and
D2 = diag(d2) on the constraints, the scaled problem is:
    minimize    (D1 c)^T x~ + (1/2) x~^T (D1 Q D1) x~ + c0
    subject to  (D2 A D1) x~ = D2 b
                lvar / d1 <= x~ <= uvar / d1,
whose solution maps back through x = D1 x~, y = D2 y~ and s = s~ / d1. Objective values
are unchanged.

"""

import dataclasses
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import numpy.typing as npt
from scipy import sparse

from .iterate import Point
from .model import QPData


@dataclass
class ScalingFactors:
    """Diagonal scaling factors.

    Parameters
    ----------
     d1 : vector of length nvar
        Column (variable) scaling.
     d2 : vector of length ncon
        Row (constraint) scaling.

    """

    d1: npt.NDArray[np.float64]
    d2: npt.NDArray[np.float64]


def _col_norms(M: sparse.spmatrix) -> npt.NDArray[np.float64]:
    if M.shape[0] == 0 or M.nnz == 0:
        return np.zeros(M.shape[1])
    return np.asarray(abs(M).max(axis=0).toarray()).ravel()


def _row_norms(M: sparse.spmatrix) -> npt.NDArray[np.float64]:
    if M.shape[1] == 0 or M.nnz == 0:
        return np.zeros(M.shape[0])
    return np.asarray(abs(M).max(axis=1).toarray()).ravel()


def ruiz_equilibrate(
    data: QPData, n_passes: int = 10, tol: float = 1e-3
) -> Tuple[QPData, ScalingFactors]:
    """Scale the problem so that rows and columns have unit infinity norm.

    Parameters
    ----------
     data : QPData
        The problem, in double precision.
     n_passes : int, default=10
        Maximum number of scaling passes.
     tol : float, default=1e-3
        Stop when all norms are within tol of 1.

    Returns
    -------
     scaled : QPData
        The scaled problem.
     factors : ScalingFactors
        The scaling factors.

    """
    d1 = np.ones(data.nvar)
    d2 = np.ones(data.ncon)
    Q = sparse.csc_matrix(data.Q)
    A = sparse.csr_matrix(data.A)

    for _ in range(n_passes):
        col = np.maximum(_col_norms(A), _col_norms(Q))
        row = _row_norms(A)
        # Empty rows and columns are left alone.
        col[col == 0.0] = 1.0
        row[row == 0.0] = 1.0

        if max(
            np.max(np.abs(1.0 - col), initial=0.0),
            np.max(np.abs(1.0 - row), initial=0.0),
        ) <= tol:
            break

        c1 = 1.0 / np.sqrt(col)
        c2 = 1.0 / np.sqrt(row)
        Q = sparse.csc_matrix(sparse.diags(c1) @ Q @ sparse.diags(c1))
        if A.shape[0] > 0:
            A = sparse.csr_matrix(sparse.diags(c2) @ A @ sparse.diags(c1))
        d1 *= c1
        d2 *= c2

    scaled = dataclasses.replace(
        data,
        Q=Q,
        A=A,
        b=d2 * data.b,
        c=d1 * data.c,
        lvar=data.lvar / d1,
        uvar=data.uvar / d1,
    )
    return scaled, ScalingFactors(d1=d1, d2=d2)


def unscale_point(pt: Point, data: QPData, factors: ScalingFactors) -> Point:
    """Map a point of the scaled problem back to the original problem.

    The result is in double precision.

    """
    d1, d2 = factors.d1, factors.d2
    return Point(
        x=d1 * pt.x.astype(np.float64),
        y=d2 * pt.y.astype(np.float64),
        s_l=pt.s_l.astype(np.float64) / d1[data.ilow],
        s_u=pt.s_u.astype(np.float64) / d1[data.iupp],
    )
