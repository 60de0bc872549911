r"""Search directions of the interior point method.

Linearizing the KKT conditions of the standard form problem at (x, y, s_l, s_u) gives
     Q dx - A^T dy - ds_l + ds_u = -rc
                            A dx = -rb
         s_l dx + (x - lvar) ds_l = r_l      (on the finite lower bounds)
        -s_u dx + (uvar - x) ds_u = r_u      (on the finite upper bounds),
where r_l and r_u are the complementarity targets. Eliminating ds_l and ds_u,
    ds_l = (r_l - s_l dx) / (x - lvar),   ds_u = (r_u + s_u dx) / (uvar - x),
leaves the K2 system with right hand side
    r1 = rc - r_l / (x - lvar) + r_u / (uvar - x),   r2 = -rb.

The predictor-corrector strategy (Mehrotra) solves this system twice per iteration
with one factorization: first the affine system with r_l = -(x - lvar) s_l, then a
corrector-centering system with rc = rb = 0 and targets sigma * mu minus the second
order terms of the affine direction. The infeasible path-following strategy solves it
once, with targets sigma * mu - (x - lvar) s_l for a fixed sigma.

"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
import numpy.typing as npt

from .iterate import Point, Residuals
from .linear_solvers import PreallocatedData
from .model import QPData
from .numerical_helpers import max_step_length


@dataclass
class Direction:
    """Search direction in (x, y, s_l, s_u)."""

    dx: npt.NDArray
    dy: npt.NDArray
    ds_l: npt.NDArray
    ds_u: npt.NDArray

    def __add__(self, other: "Direction") -> "Direction":
        return Direction(
            dx=self.dx + other.dx,
            dy=self.dy + other.dy,
            ds_l=self.ds_l + other.ds_l,
            ds_u=self.ds_u + other.ds_u,
        )


def build_rhs(
    data: QPData,
    res: Residuals,
    r_l: npt.NDArray,
    r_u: npt.NDArray,
    rc: Optional[npt.NDArray] = None,
    rb: Optional[npt.NDArray] = None,
) -> npt.NDArray:
    """Right hand side of the K2 system.

    Parameters
    ----------
     data : QPData
        The problem.
     res : Residuals
        Residuals at the current point, providing the bound distances.
     r_l, r_u : vectors
        Complementarity targets on the lower and upper bounds.
     rc, rb : vectors, optional
        Dual and primal residuals. Treated as zero when omitted.

    Returns
    -------
     rhs : vector of length nvar + ncon
        The right hand side.

    """
    n, m = data.nvar, data.ncon
    rhs = np.zeros(n + m, dtype=data.dtype)
    if rc is not None:
        rhs[:n] = rc
    rhs[data.ilow] -= r_l / res.x_m_lvar
    rhs[data.iupp] += r_u / res.uvar_m_x
    if rb is not None:
        rhs[n:] = -rb
    return rhs


def recover_bound_duals(
    data: QPData,
    pt: Point,
    res: Residuals,
    sol: npt.NDArray,
    r_l: npt.NDArray,
    r_u: npt.NDArray,
) -> Direction:
    """Complete the solution of the K2 system into a full direction."""
    n = data.nvar
    dx = sol[:n]
    dy = sol[n:]
    ds_l = (r_l - pt.s_l * dx[data.ilow]) / res.x_m_lvar
    ds_u = (r_u + pt.s_u * dx[data.iupp]) / res.uvar_m_x
    return Direction(dx=dx, dy=dy, ds_l=ds_l, ds_u=ds_u)


def max_step_lengths(
    data: QPData, pt: Point, res: Residuals, d: Direction
) -> Tuple[float, float]:
    """Largest primal and dual step lengths that keep the iterate nonnegative.

    Returns np.inf when no component of the direction decreases.

    """
    alpha_pri = min(
        max_step_length(res.x_m_lvar, d.dx[data.ilow], cap=np.inf),
        max_step_length(res.uvar_m_x, -d.dx[data.iupp], cap=np.inf),
    )
    alpha_dual = min(
        max_step_length(pt.s_l, d.ds_l, cap=np.inf),
        max_step_length(pt.s_u, d.ds_u, cap=np.inf),
    )
    return alpha_pri, alpha_dual


def step_lengths(
    data: QPData,
    pt: Point,
    res: Residuals,
    d: Direction,
    safety: float = 0.99,
    coupled: Optional[bool] = None,
) -> Tuple[float, float]:
    """Primal and dual step lengths.

    Each step covers at most `safety` times the distance to the boundary, so the
    iterate stays strictly positive. Coupled steps are equal; by default steps are
    coupled unless the problem is a linear program.

    Returns
    -------
     alpha_pri, alpha_dual : float
        Step lengths in (0, 1].

    """
    alpha_pri, alpha_dual = max_step_lengths(data, pt, res, d)
    alpha_pri = min(1.0, safety * alpha_pri)
    alpha_dual = min(1.0, safety * alpha_dual)
    if coupled is None:
        coupled = not data.q_is_zero
    if coupled:
        alpha_pri = alpha_dual = min(alpha_pri, alpha_dual)
    return alpha_pri, alpha_dual


def take_step(pt: Point, d: Direction, alpha_pri: float, alpha_dual: float) -> None:
    """Move pt along a direction, in place."""
    pt.x += alpha_pri * d.dx
    pt.y += alpha_dual * d.dy
    pt.s_l += alpha_dual * d.ds_l
    pt.s_u += alpha_dual * d.ds_u


def _complementarity(
    data: QPData,
    pt: Point,
    res: Residuals,
    d: Direction,
    alpha_pri: float,
    alpha_dual: float,
) -> float:
    n_bounds = data.nlow + data.nupp
    if n_bounds == 0:
        return 0.0

    x_m_lvar = res.x_m_lvar + alpha_pri * d.dx[data.ilow]
    uvar_m_x = res.uvar_m_x - alpha_pri * d.dx[data.iupp]
    s_l = pt.s_l + alpha_dual * d.ds_l
    s_u = pt.s_u + alpha_dual * d.ds_u
    return (
        float(np.dot(x_m_lvar, s_l)) + float(np.dot(uvar_m_x, s_u))
    ) / n_bounds


def predictor_corrector(
    data: QPData, pt: Point, res: Residuals, pad: PreallocatedData
) -> Tuple[Direction, Dict[str, npt.NDArray]]:
    """Mehrotra predictor-corrector direction.

    Solves the affine and corrector-centering systems with the current factorization.

    Parameters
    ----------
     data : QPData
        The problem.
     pt : Point
        Current point.
     res : Residuals
        Residuals at pt.
     pad : PreallocatedData
        Linear solver, factorized at pt.

    Returns
    -------
     d : Direction
        The combined direction.
     rhs_by_tag : dict
        Copies of the right hand sides, keyed "aff" and "cc".

    """
    r_l = -res.x_m_lvar * pt.s_l
    r_u = -res.uvar_m_x * pt.s_u
    rhs = build_rhs(data, res, r_l, r_u, rc=res.rc, rb=res.rb)
    rhs_aff = rhs.copy()
    sol = pad.solve_in_place(rhs, "aff")
    d_aff = recover_bound_duals(data, pt, res, sol, r_l, r_u)

    alpha_pri, alpha_dual = max_step_lengths(data, pt, res, d_aff)
    alpha_pri, alpha_dual = min(1.0, alpha_pri), min(1.0, alpha_dual)
    mu_aff = _complementarity(data, pt, res, d_aff, alpha_pri, alpha_dual)
    sigma = (mu_aff / res.mu) ** 3 if res.mu > 0.0 else 0.0
    sigma_mu = sigma * res.mu

    r_l = sigma_mu - d_aff.dx[data.ilow] * d_aff.ds_l
    r_u = sigma_mu + d_aff.dx[data.iupp] * d_aff.ds_u
    rhs = build_rhs(data, res, r_l, r_u)
    rhs_cc = rhs.copy()
    sol = pad.solve_in_place(rhs, "cc")
    d_cc = recover_bound_duals(data, pt, res, sol, r_l, r_u)

    return d_aff + d_cc, {"aff": rhs_aff, "cc": rhs_cc}


def infeasible_path_following(
    data: QPData,
    pt: Point,
    res: Residuals,
    pad: PreallocatedData,
    sigma: float = 0.1,
) -> Tuple[Direction, Dict[str, npt.NDArray]]:
    """Infeasible path-following direction with a fixed centering parameter.

    Parameters
    ----------
     data : QPData
        The problem.
     pt : Point
        Current point.
     res : Residuals
        Residuals at pt.
     pad : PreallocatedData
        Linear solver, factorized at pt.
     sigma : float, default=0.1
        Centering parameter.

    Returns
    -------
     d : Direction
        The direction.
     rhs_by_tag : dict
        Copy of the right hand side, keyed "ipf".

    """
    sigma_mu = sigma * res.mu
    r_l = sigma_mu - res.x_m_lvar * pt.s_l
    r_u = sigma_mu - res.uvar_m_x * pt.s_u
    rhs = build_rhs(data, res, r_l, r_u, rc=res.rc, rb=res.rb)
    rhs_ipf = rhs.copy()
    sol = pad.solve_in_place(rhs, "ipf")
    return recover_bound_duals(data, pt, res, sol, r_l, r_u), {"ipf": rhs_ipf}
