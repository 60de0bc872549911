"""Result of the interior point method."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import matplotlib.pyplot as plt
import numpy as np
import numpy.typing as npt
from matplotlib.axes import Axes

from .iterate import Counters


class Status(Enum):
    """Termination status.

    CONVERGED : tolerances satisfied at the highest precision level.
    MAX_ITER_REACHED : iteration or time budget exhausted.
    DIVERGED : residuals blew up or steps collapsed.
    FAILED : the linear solver could not produce a usable factorization.

    """

    CONVERGED = "converged"
    MAX_ITER_REACHED = "max_iter_reached"
    DIVERGED = "diverged"
    FAILED = "failed"


@dataclass
class Statistics:
    """Wrapper for the results of the interior point method.

    Parameters
    ----------
    status : Status
        Termination status.
    message : str
        Summary of result.
    solution : vector
        Primal solution, or the last iterate if the method did not converge.
    objective : float
        Primal objective value.
    dual_objective : float
        Dual objective value.
    primal_feas : float
        Infinity norm of the primal residual of the standard form.
    dual_feas : float
        Infinity norm of the dual residual of the standard form.
    multipliers : vector
        Constraint multipliers.
    multipliers_L, multipliers_U : vectors
        Multipliers of the lower and upper variable bounds.
    iter : int
        Number of iterations.
    elapsed_time : float
        Wall clock time, in seconds.
    precision : str
        Floating point type of the last iteration.
    precision_history : List[str]
        Floating point type of each iteration.
    counters : Counters
        Factorization, solve, promotion and snapshot counts.
    solver_specific : dict
        Per-iteration history when requested: "pddH" (relative primal-dual
        difference), "alpha_pri", "alpha_dual", "min_slack" and "min_dual".

    """

    status: Status
    message: str
    solution: npt.NDArray[np.float64]
    objective: float
    dual_objective: float
    primal_feas: float
    dual_feas: float
    multipliers: npt.NDArray[np.float64]
    multipliers_L: npt.NDArray[np.float64]
    multipliers_U: npt.NDArray[np.float64]
    iter: int
    elapsed_time: float
    precision: str
    precision_history: List[str]
    counters: Counters
    solver_specific: Dict[str, Any] = field(default_factory=dict)

    @property
    def converged(self) -> bool:
        """Whether the method converged."""
        return self.status == Status.CONVERGED

    def plot_convergence(self, ax: Optional[Axes] = None) -> Axes:
        """Plot convergence.

        Requires `history=True` in the configuration.

        """
        if "pddH" not in self.solver_specific:
            raise ValueError("No history recorded; solve with history=True.")

        if ax is None:
            _, ax = plt.subplots()

        gaps = self.solver_specific["pddH"]
        ax.stairs(
            values=np.maximum(np.abs(gaps), np.finfo(np.float64).tiny),
            edges=[ii for ii in range(len(gaps) + 1)],
            baseline=None,
        )
        plt.yscale("log")
        ax.set_xlabel("Iterations")
        ax.set_ylabel("Relative Duality Gap")
        return ax

    def numeric_signature(self) -> Dict[str, Any]:
        """Everything but timing, for comparing two runs."""
        return {
            "status": self.status,
            "solution": self.solution.tolist(),
            "objective": self.objective,
            "dual_objective": self.dual_objective,
            "primal_feas": self.primal_feas,
            "dual_feas": self.dual_feas,
            "multipliers": self.multipliers.tolist(),
            "multipliers_L": self.multipliers_L.tolist(),
            "multipliers_U": self.multipliers_U.tolist(),
            "iter": self.iter,
            "precision": self.precision,
            "precision_history": list(self.precision_history),
            "factorizations": self.counters.factorizations,
            "solves": self.counters.solves,
            "promotions": self.counters.promotions,
            "solver_specific": {
                key: list(value) for key, value in self.solver_specific.items()
            },
        }
