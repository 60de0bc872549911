"""Interior point method driver.

The method moves through the states
    Init -> Iterating -> {Converged, MaxIterReached, Diverged, Failed}.
Init converts the problem to standard form, scales it, casts it to the first precision
level, initializes the linear solver and computes a starting point. Each iteration
then refactorizes the K2 system at the current point, computes a search direction,
and moves along it while keeping the bound distances and bound multipliers strictly
positive.

"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
import numpy.typing as npt

from .exceptions import (
    FactorizationError,
    IterationBudgetExceeded,
    NumericalStagnation,
)
from .iterate import Counters, Point, Residuals, bound_distances, compute_residuals
from .linear_solvers import PreallocatedData, SolverParams
from .model import QPData, QuadraticModel, postsolve, to_standard_form
from .precision import PrecisionManager, promote_point, promote_problem
from .results import Statistics, Status
from .scaling import ScalingFactors, ruiz_equilibrate, unscale_point
from .settings import Configuration, Strategy
from .snapshot import maybe_snapshot, should_snapshot
from .strategies import (
    infeasible_path_following,
    predictor_corrector,
    step_lengths,
    take_step,
)

logger = logging.getLogger(__name__)

HISTORY_KEYS = ("pddH", "alpha_pri", "alpha_dual", "min_slack", "min_dual")
MIN_STARTING_DUAL = 1e-2


def push_inside_bounds(data: QPData, x: npt.NDArray) -> npt.NDArray:
    """Move x strictly inside its finite bounds.

    Variables closer than min(1, (uvar - lvar) / 4) to a finite bound are moved to
    that distance.

    """
    lvar, uvar = data.lvar, data.uvar
    has_lower = np.isfinite(lvar)
    has_upper = np.isfinite(uvar)
    boxed = has_lower & has_upper

    margin = np.ones_like(x)
    margin[boxed] = np.minimum(1.0, (uvar[boxed] - lvar[boxed]) / 4.0)

    x = x.copy()
    x[has_lower] = np.maximum(x[has_lower], lvar[has_lower] + margin[has_lower])
    x[has_upper] = np.minimum(x[has_upper], uvar[has_upper] - margin[has_upper])
    return x


def initial_guess(data: QPData) -> Point:
    """Interior point whose bound multipliers equal its bound distances.

    The ratio s / (x - lvar) is one on every bound, so the K2 matrix built at this
    point has a unit bound diagonal.

    """
    x = push_inside_bounds(data, np.zeros(data.nvar, dtype=data.dtype))
    x_m_lvar, uvar_m_x = bound_distances(data, x)
    return Point(
        x=x,
        y=np.zeros(data.ncon, dtype=data.dtype),
        s_l=x_m_lvar.copy(),
        s_u=uvar_m_x.copy(),
    )


def starting_point(
    data: QPData, params: SolverParams, counters: Counters
) -> Tuple[Point, PreallocatedData]:
    """Initialize the linear solver and compute a starting point.

    Two systems are solved with the K2 matrix built at `initial_guess`:
       K [x; .] = [0; b]   gives x, roughly the least-norm solution of A x = b,
       K [.; y] = [c; 0]   gives y, roughly a least-squares multiplier.
    Then x is pushed inside its bounds, the bound multipliers are read off the dual
    residual z = c + Q x - A^T y, and both are shifted as in Mehrotra (1992) so that
    the point is strictly interior and well centered.

    Parameters
    ----------
     data : QPData
        The problem.
     params : SolverParams
        Linear solver parameters.
     counters : Counters
        Updated with the factorizations and solves performed.

    Returns
    -------
     pt : Point
        The starting point.
     pad : PreallocatedData
        The linear solver.

    Raises
    ------
     FactorizationError
        If the linear solver could not be initialized.

    """
    n, m = data.nvar, data.ncon
    pad = params.initialize(data, initial_guess(data))
    counters.factorizations += max(pad.attempts, 1)

    rhs = np.zeros(n + m, dtype=data.dtype)
    rhs[n:] = data.b
    x = pad.solve_in_place(rhs, "init")[:n].copy()

    rhs = np.zeros(n + m, dtype=data.dtype)
    rhs[:n] = data.c
    y = pad.solve_in_place(rhs, "init")[n:].copy()
    counters.solves += 2

    z = data.c + data.Q @ x - data.A.T @ y
    x = push_inside_bounds(data, x)
    x_m_lvar, uvar_m_x = bound_distances(data, x)

    n_low = data.nlow
    s = np.concatenate([z[data.ilow], -z[data.iupp]])
    if s.shape[0] > 0:
        dist = np.concatenate([x_m_lvar, uvar_m_x])
        s = s + max(-1.5 * float(np.min(s)), 0.0)
        s = s + 0.5 * float(np.dot(dist, s)) / float(np.sum(dist))
        s = np.maximum(s, MIN_STARTING_DUAL)

    return Point(x=x, y=y, s_l=s[:n_low], s_u=s[n_low:]), pad


def _inf_norm(v: npt.NDArray) -> float:
    if v.shape[0] == 0:
        return 0.0
    return float(np.max(np.abs(v)))


def _is_interior(pt: Point, res: Residuals) -> bool:
    return bool(
        np.all(res.x_m_lvar > 0)
        and np.all(res.uvar_m_x > 0)
        and np.all(pt.s_l > 0)
        and np.all(pt.s_u > 0)
    )


def _is_finite(res: Residuals) -> bool:
    return bool(
        np.isfinite(res.rb_norm) and np.isfinite(res.rc_norm) and np.isfinite(res.pdd)
    )


class InteriorPointMethod:
    """Primal-dual interior point method for convex quadratic programs.

    Parameters
    ----------
     configuration : Configuration, optional
        Settings. Defaults to `Configuration()`.

    """

    def __init__(self, configuration: Optional[Configuration] = None) -> None:
        self.configuration = configuration or Configuration()

    def solve(self, qm: QuadraticModel) -> Statistics:
        """Solve a quadratic program.

        Parameters
        ----------
         qm : QuadraticModel
            The problem.

        Returns
        -------
         stats : Statistics
            Solution and termination status. Numerical failures are reported through
            the status rather than raised.

        Raises
        ------
         DimensionMismatch
            If the problem dimensions are inconsistent.
         ValueError
            If the problem or the configuration is invalid.

        """
        cfg = self.configuration
        counters = Counters()
        std = to_standard_form(qm)
        if cfg.scaling:
            master, factors = ruiz_equilibrate(std)
        else:
            master, factors = std, None

        precision = PrecisionManager(
            cfg.mode,
            cfg.tolerances,
            stagnation_threshold=cfg.stagnation_threshold,
            stagnation_window=cfg.stagnation_window,
        )
        data = promote_problem(master, precision.dtype)
        history: Dict[str, List[float]] = (
            {key: [] for key in HISTORY_KEYS} if cfg.history else {}
        )

        if cfg.verbose:
            print(
                f"  Starting IPM on {qm.name}: {data.nvar} variables, "
                f"{data.ncon} constraints, {precision.dtype.name}"
            )

        while True:
            try:
                pt, pad = starting_point(data, cfg.plugin, counters)
                break
            except FactorizationError as e:
                if precision.is_final:
                    stats = self._finish(
                        Status.FAILED,
                        f"Could not initialize the linear solver: {e}",
                        initial_guess(data),
                        std,
                        factors,
                        precision,
                        counters,
                        history,
                    )
                    self._report(stats)
                    return stats

                reason = f"Initialization failed in {precision.dtype.name}"
                precision.promote()
                counters.promotions += 1
                data = promote_problem(master, precision.dtype)
                if cfg.verbose:
                    print(f"  {reason}; switching to {precision.dtype.name}")
                logger.info("%s: %s; switching to %s", reason, e, precision.dtype.name)

        if cfg.max_iter == 0:
            budget = IterationBudgetExceeded(
                "Maximum number of iterations reached", 0, counters.elapsed()
            )
            stats = self._finish(
                Status.MAX_ITER_REACHED,
                str(budget),
                pt,
                std,
                factors,
                precision,
                counters,
                history,
            )
            self._report(stats)
            return stats

        res = compute_residuals(data, pt)
        rb_norm0, rc_norm0 = res.rb_norm, res.rc_norm
        best = (pt.copy(), res)
        best_merit = np.inf
        promote_reason: Optional[str] = None
        pad_is_current = False
        n_small_steps = 0
        status: Optional[Status] = None
        message = ""

        while True:
            b_norm, c_norm = _inf_norm(data.b), _inf_norm(data.c)
            gap_tol, pri_tol, dual_tol = precision.tolerances_for_level()
            converged = (
                res.rb_norm <= pri_tol * (1.0 + b_norm)
                and res.rc_norm <= dual_tol * (1.0 + c_norm)
                and res.relative_gap <= gap_tol
            )

            merit = max(
                res.rb_norm / (1.0 + b_norm),
                res.rc_norm / (1.0 + c_norm),
                res.relative_gap,
            )
            if _is_finite(res) and _is_interior(pt, res) and merit <= best_merit:
                best, best_merit = (pt.copy(), res), merit

            if converged:
                if precision.is_final:
                    status = Status.CONVERGED
                    message = (
                        "Interior Point Method completed successfully to the desired "
                        "tolerance"
                    )
                    break
                promote_reason = f"Tolerances reached in {precision.dtype.name}"

            try:
                self._check_budget(counters)
            except IterationBudgetExceeded as e:
                status = Status.MAX_ITER_REACHED
                message = str(e)
                break

            if promote_reason is not None:
                pt, res = best
                try:
                    data, pt, pad = self._promote(master, pt, precision, counters)
                except FactorizationError as e:
                    status = Status.FAILED
                    message = f"Factorization failed after promotion: {e}"
                    break

                if cfg.verbose:
                    print(f"  {promote_reason}; switching to {precision.dtype.name}")
                logger.info(
                    "%s; switching to %s", promote_reason, precision.dtype.name
                )
                res = compute_residuals(data, pt)
                rb_norm0, rc_norm0 = res.rb_norm, res.rc_norm
                best, best_merit = (pt.copy(), res), np.inf
                promote_reason = None
                pad_is_current = True
                n_small_steps = 0
                continue

            try:
                if not pad_is_current:
                    counters.factorizations += pad.refresh(data, pt)
                pad_is_current = False

                if cfg.strategy == Strategy.PREDICTOR_CORRECTOR:
                    d, rhs_by_tag = predictor_corrector(data, pt, res, pad)
                else:
                    d, rhs_by_tag = infeasible_path_following(
                        data, pt, res, pad, sigma=cfg.ipf_sigma
                    )
            except FactorizationError as e:
                if precision.is_final:
                    status = Status.FAILED
                    message = f"Factorization failed: {e}"
                    break
                promote_reason = f"Factorization failed in {precision.dtype.name}"
                continue

            counters.solves += len(rhs_by_tag)
            if should_snapshot(counters.k, cfg.snapshot_policy) and not maybe_snapshot(
                counters.k, pad.system, rhs_by_tag, cfg.snapshot_policy
            ):
                counters.snapshot_failures += 1

            alpha_pri, alpha_dual = step_lengths(
                data, pt, res, d, safety=cfg.step_safety
            )
            take_step(pt, d, alpha_pri, alpha_dual)
            counters.k += 1
            precision.record()
            res = compute_residuals(data, pt)

            if cfg.history:
                history["pddH"].append(res.relative_gap)
                history["alpha_pri"].append(alpha_pri)
                history["alpha_dual"].append(alpha_dual)
                history["min_slack"].append(
                    float(
                        np.min(
                            np.concatenate([res.x_m_lvar, res.uvar_m_x]),
                            initial=np.inf,
                        )
                    )
                )
                history["min_dual"].append(
                    float(np.min(np.concatenate([pt.s_l, pt.s_u]), initial=np.inf))
                )

            if cfg.verbose:
                print(
                    f"  {counters.k:02d} pri_obj={res.pri_obj:.6e} "
                    f"pdd={res.pdd:.2e} rb={res.rb_norm:.2e} rc={res.rc_norm:.2e} "
                    f"alpha_pri={alpha_pri:.2e} alpha_dual={alpha_dual:.2e} "
                    f"mu={res.mu:.2e} {precision.dtype.name}"
                )

            if max(alpha_pri, alpha_dual) < cfg.small_step:
                n_small_steps += 1
            else:
                n_small_steps = 0

            trouble = None
            if not _is_finite(res):
                trouble = "Residuals are not finite"
            elif not _is_interior(pt, res):
                trouble = "Iterate left the interior"
            elif (
                res.rb_norm > cfg.divergence_factor * (1.0 + rb_norm0)
                or res.rc_norm > cfg.divergence_factor * (1.0 + rc_norm0)
            ):
                trouble = "Residuals diverged"
            elif n_small_steps >= cfg.max_small_steps:
                trouble = "Step lengths collapsed"

            if trouble is not None:
                if precision.is_final:
                    status = Status.DIVERGED
                    message = trouble
                    break
                promote_reason = f"{trouble} in {precision.dtype.name}"
            elif not precision.is_final:
                try:
                    precision.observe(res.pdd)
                except NumericalStagnation as e:
                    promote_reason = str(e)

        if status != Status.CONVERGED:
            pt = best[0]
        stats = self._finish(
            status, message, pt, std, factors, precision, counters, history
        )
        self._report(stats)
        return stats

    def _check_budget(self, counters: Counters) -> None:
        """Raise IterationBudgetExceeded when out of iterations or time."""
        cfg = self.configuration
        elapsed = counters.elapsed()
        if counters.k >= cfg.max_iter:
            raise IterationBudgetExceeded(
                "Maximum number of iterations reached", counters.k, elapsed
            )
        if elapsed > cfg.max_time:
            raise IterationBudgetExceeded("Time limit reached", counters.k, elapsed)

    def _promote(
        self,
        master: QPData,
        pt: Point,
        precision: PrecisionManager,
        counters: Counters,
    ) -> Tuple[QPData, Point, PreallocatedData]:
        """Move to the next precision level and reinitialize the linear solver."""
        dtype = precision.promote()
        counters.promotions += 1
        data = promote_problem(master, dtype)
        pt = promote_point(pt, dtype)
        pad = self.configuration.plugin.initialize(data, pt)
        counters.factorizations += max(pad.attempts, 1)
        return data, pt, pad

    def _finish(
        self,
        status: Status,
        message: str,
        pt: Point,
        std: QPData,
        factors: Optional[ScalingFactors],
        precision: PrecisionManager,
        counters: Counters,
        history: Dict[str, List[float]],
    ) -> Statistics:
        """Map a point back to the user's problem and collect statistics."""
        pt = pt.astype(np.float64)
        if factors is not None:
            pt = unscale_point(pt, std, factors)

        res = compute_residuals(std, pt)
        x, y, z_l, z_u = postsolve(std, pt.x, pt.y, pt.s_l, pt.s_u)
        return Statistics(
            status=status,
            message=message,
            solution=x,
            objective=res.pri_obj,
            dual_objective=res.dual_obj,
            primal_feas=res.rb_norm,
            dual_feas=res.rc_norm,
            multipliers=y,
            multipliers_L=z_l,
            multipliers_U=z_u,
            iter=counters.k,
            elapsed_time=counters.elapsed(),
            precision=precision.dtype.name,
            precision_history=list(precision.history),
            counters=counters,
            solver_specific=history,
        )

    def _report(self, stats: Statistics) -> None:
        if not self.configuration.verbose:
            return
        print(
            f"  IPM {stats.status.value} after {stats.iter} iterations in "
            f"{1000 * stats.elapsed_time:.03f} ms: {stats.message}"
        )
