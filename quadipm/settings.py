"""Configuration of the interior point method."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from .linear_solvers import K2LDLParams, SolverParams, get_solver
from .snapshot import SnapshotPolicy


class Mode(Enum):
    """Floating point precision mode.

    FIXED_SINGLE and FIXED_DOUBLE iterate in float32 and float64 respectively.
    STAGED_MULTI starts in float32 and switches to float64 once single precision stops
    making progress or reaches its own tolerances.

    """

    FIXED_SINGLE = "single"
    FIXED_DOUBLE = "double"
    STAGED_MULTI = "multi"


class Strategy(Enum):
    """Step strategy.

    PREDICTOR_CORRECTOR solves two systems per iteration (Mehrotra's affine and
    corrector-centering systems) with one factorization. INFEASIBLE_PATH_FOLLOWING
    solves one system per iteration with a fixed centering parameter.

    """

    PREDICTOR_CORRECTOR = "pc"
    INFEASIBLE_PATH_FOLLOWING = "ipf"


@dataclass
class Tolerances:
    """Stopping tolerances.

    The method stops at the highest precision level when:
       ||A x - b||_inf <= primal_feasibility * (1 + ||b||_inf),
       ||c + Q x - A^T y - s_l + s_u||_inf <= dual_feasibility * (1 + ||c||_inf),
       |pri_obj - dual_obj| / (1 + |pri_obj|) <= gap.
    The "_single" variants apply when iterating in single precision, either in the
    FIXED_SINGLE mode or as the criterion to leave single precision in the
    STAGED_MULTI mode.

    Parameters
    ----------
    gap : float, default=1e-8
        Relative primal-dual gap tolerance.
    primal_feasibility : float, default=1e-6
        Relative primal feasibility tolerance.
    dual_feasibility : float, default=1e-6
        Relative dual feasibility tolerance.
    gap_single : float, default=1e-2
    primal_feasibility_single : float, default=1e-4
    dual_feasibility_single : float, default=1e-4
        Single precision counterparts.

    """

    gap: float = 1e-8
    primal_feasibility: float = 1e-6
    dual_feasibility: float = 1e-6
    gap_single: float = 1e-2
    primal_feasibility_single: float = 1e-4
    dual_feasibility_single: float = 1e-4

    def __post_init__(self) -> None:
        for name, value in vars(self).items():
            if value <= 0.0:
                raise ValueError(f"{name} must be strictly positive.")


@dataclass
class Configuration:
    """Interior point method settings.

    Parameters
    ----------
    mode : Mode or str, default=Mode.FIXED_DOUBLE
        Floating point precision mode; "single", "double" or "multi".
    scaling : bool, default=True
        If True, equilibrate the problem before iterating.
    strategy : Strategy or str, default=Strategy.PREDICTOR_CORRECTOR
        Step strategy; "pc" or "ipf".
    max_iter : int, default=200
        Maximum number of iterations. With max_iter=0 the method returns right after
        computing the starting point.
    max_time : float, default=1200.0
        Time budget in seconds, checked once per iteration.
    tolerances : Tolerances
        Stopping tolerances.
    snapshot_policy : SnapshotPolicy
        When to save the Newton systems. Disabled by default.
    plugin : SolverParams or str, default=K2LDLParams()
        Linear solver, or the name of a registered linear solver.
    history : bool, default=False
        If True, record per-iteration convergence history in the result.
    verbose : bool, default=False
        If True, print a line per iteration.
    step_safety : float, default=0.99
        Fraction of the distance to the boundary of the positive orthant a step may
        cover.
    ipf_sigma : float, default=0.1
        Centering parameter of the infeasible path-following strategy.
    stagnation_threshold : float, default=0.1
        The gap is stagnating when an iteration reduces it by less than this fraction.
    stagnation_window : int, default=3
        Number of consecutive stagnating iterations that trigger a precision switch.
    small_step : float, default=1e-8
        Step lengths below this are considered collapsed.
    max_small_steps : int, default=5
        Number of consecutive collapsed steps at the highest precision after which the
        method reports divergence.
    divergence_factor : float, default=1e12
        The method reports divergence when a residual norm exceeds this factor times
        one plus its initial value.

    """

    mode: Union[Mode, str] = Mode.FIXED_DOUBLE
    scaling: bool = True
    strategy: Union[Strategy, str] = Strategy.PREDICTOR_CORRECTOR
    max_iter: int = 200
    max_time: float = 1200.0
    tolerances: Tolerances = field(default_factory=Tolerances)
    snapshot_policy: SnapshotPolicy = field(default_factory=SnapshotPolicy)
    plugin: Union[SolverParams, str] = field(default_factory=K2LDLParams)
    history: bool = False
    verbose: bool = False
    step_safety: float = 0.99
    ipf_sigma: float = 0.1
    stagnation_threshold: float = 0.1
    stagnation_window: int = 3
    small_step: float = 1e-8
    max_small_steps: int = 5
    divergence_factor: float = 1e12

    def __post_init__(self) -> None:
        self.mode = Mode(self.mode)
        self.strategy = Strategy(self.strategy)
        if isinstance(self.plugin, str):
            self.plugin = get_solver(self.plugin)
        if not isinstance(self.plugin, SolverParams):
            raise TypeError("plugin must be a SolverParams instance or a name.")

        if self.max_iter < 0:
            raise ValueError("max_iter must be nonnegative.")
        if self.max_time <= 0.0:
            raise ValueError("max_time must be strictly positive.")
        if not 0.0 < self.step_safety < 1.0:
            raise ValueError("step_safety must be in (0, 1).")
        if not 0.0 < self.ipf_sigma < 1.0:
            raise ValueError("ipf_sigma must be in (0, 1).")
        if self.stagnation_window < 1:
            raise ValueError("stagnation_window must be at least 1.")
        if self.max_small_steps < 1:
            raise ValueError("max_small_steps must be at least 1.")
