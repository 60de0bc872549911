"""Primal-dual iterate, residuals, and counters."""

import time
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np
import numpy.typing as npt

from .model import QPData


@dataclass
class Point:
    """Primal-dual point.

    Parameters
    ----------
     x : vector of length nvar
        Primal variables.
     y : vector of length ncon
        Multipliers of the equality constraints.
     s_l : vector of length nlow
        Multipliers of the finite lower bounds.
     s_u : vector of length nupp
        Multipliers of the finite upper bounds.

    """

    x: npt.NDArray
    y: npt.NDArray
    s_l: npt.NDArray
    s_u: npt.NDArray

    def astype(self, dtype: npt.DTypeLike) -> "Point":
        """Copy the point at another floating point precision."""
        return Point(
            x=self.x.astype(dtype),
            y=self.y.astype(dtype),
            s_l=self.s_l.astype(dtype),
            s_u=self.s_u.astype(dtype),
        )

    def copy(self) -> "Point":
        """Copy the point."""
        return self.astype(self.x.dtype)


def bound_distances(
    data: QPData, x: npt.NDArray
) -> Tuple[npt.NDArray, npt.NDArray]:
    """Calculate x - lvar on ilow and uvar - x on iupp."""
    return x[data.ilow] - data.lvar[data.ilow], data.uvar[data.iupp] - x[data.iupp]


@dataclass
class Residuals:
    """Residuals of the KKT conditions at a point.

    Parameters
    ----------
     rb : vector
        Primal residual, A * x - b.
     rc : vector
        Dual residual, c + Q * x - A^T * y - s_l + s_u.
     rb_norm, rc_norm : float
        Infinity norms of rb and rc.
     pri_obj, dual_obj : float
        Primal and dual objective values.
     pdd : float
        Primal-dual difference, pri_obj - dual_obj.
     mu : float
        Average complementarity.
     x_m_lvar, uvar_m_x : vectors
        Distances to the finite bounds.

    """

    rb: npt.NDArray
    rc: npt.NDArray
    rb_norm: float
    rc_norm: float
    pri_obj: float
    dual_obj: float
    pdd: float
    mu: float
    x_m_lvar: npt.NDArray
    uvar_m_x: npt.NDArray

    @property
    def relative_gap(self) -> float:
        """Primal-dual difference relative to the primal objective."""
        return abs(self.pdd) / (1.0 + abs(self.pri_obj))


def _inf_norm(v: npt.NDArray) -> float:
    if v.shape[0] == 0:
        return 0.0
    return float(np.max(np.abs(v)))


def compute_residuals(data: QPData, pt: Point) -> Residuals:
    """Compute residuals, objectives and complementarity at pt."""
    Qx = data.Q @ pt.x
    xQx = float(np.dot(pt.x, Qx))
    rb = data.A @ pt.x - data.b

    rc = data.c + Qx - data.A.T @ pt.y
    rc[data.ilow] -= pt.s_l
    rc[data.iupp] += pt.s_u

    x_m_lvar, uvar_m_x = bound_distances(data, pt.x)
    pri_obj = float(np.dot(data.c, pt.x)) + 0.5 * xQx + data.c0
    dual_obj = (
        float(np.dot(data.b, pt.y))
        - 0.5 * xQx
        + float(np.dot(data.lvar[data.ilow], pt.s_l))
        - float(np.dot(data.uvar[data.iupp], pt.s_u))
        + data.c0
    )

    n_bounds = data.nlow + data.nupp
    if n_bounds > 0:
        mu = (
            float(np.dot(x_m_lvar, pt.s_l)) + float(np.dot(uvar_m_x, pt.s_u))
        ) / n_bounds
    else:
        mu = 0.0

    return Residuals(
        rb=rb,
        rc=rc,
        rb_norm=_inf_norm(rb),
        rc_norm=_inf_norm(rc),
        pri_obj=pri_obj,
        dual_obj=dual_obj,
        pdd=pri_obj - dual_obj,
        mu=mu,
        x_m_lvar=x_m_lvar,
        uvar_m_x=uvar_m_x,
    )


@dataclass
class Counters:
    """Per-solve counters and timer."""

    k: int = 0
    factorizations: int = 0
    solves: int = 0
    promotions: int = 0
    snapshot_failures: int = 0
    start_time: float = field(default_factory=time.time)

    def elapsed(self) -> float:
        """Seconds since the solve started."""
        return time.time() - self.start_time
