"""Floating point precision levels and switching between them.

In the STAGED_MULTI mode the method first iterates in single precision, which is
cheaper, then switches to double precision to reach the final tolerances. The switch
happens when single precision satisfies its own (looser) tolerances, or when the
duality gap stops decreasing, or when single precision runs into numerical trouble.
Precision only ever increases.

"""

from typing import List, Optional, Tuple

import numpy as np

from .exceptions import NumericalStagnation
from .iterate import Point
from .model import QPData
from .settings import Mode, Tolerances

PRECISION_LEVELS = {
    Mode.FIXED_SINGLE: (np.float32,),
    Mode.FIXED_DOUBLE: (np.float64,),
    Mode.STAGED_MULTI: (np.float32, np.float64),
}


class PrecisionManager:
    """Tracks the current precision level and decides when to leave it.

    Parameters
    ----------
     mode : Mode
        Precision mode.
     tolerances : Tolerances
        Stopping tolerances.
     stagnation_threshold : float, default=0.1
        An iteration stagnates when it reduces |pdd| by less than this fraction.
     stagnation_window : int, default=3
        Number of consecutive stagnating iterations that count as stagnation.

    """

    def __init__(
        self,
        mode: Mode,
        tolerances: Tolerances,
        stagnation_threshold: float = 0.1,
        stagnation_window: int = 3,
    ) -> None:
        self.mode = Mode(mode)
        self.tolerances = tolerances
        self.stagnation_threshold = stagnation_threshold
        self.stagnation_window = stagnation_window
        self.levels = [np.dtype(t) for t in PRECISION_LEVELS[self.mode]]
        self.level = 0
        self.history: List[str] = []
        self._previous_pdd: Optional[float] = None
        self._n_stalled = 0

    @property
    def dtype(self) -> np.dtype:
        """Current floating point type."""
        return self.levels[self.level]

    @property
    def is_final(self) -> bool:
        """Whether the current level is the highest one of the mode."""
        return self.level == len(self.levels) - 1

    def tolerances_for_level(self) -> Tuple[float, float, float]:
        """Gap, primal and dual feasibility tolerances at the current level."""
        tol = self.tolerances
        if self.dtype == np.float32:
            return (
                tol.gap_single,
                tol.primal_feasibility_single,
                tol.dual_feasibility_single,
            )
        return tol.gap, tol.primal_feasibility, tol.dual_feasibility

    def record(self) -> None:
        """Append the current level to the history."""
        self.history.append(self.dtype.name)

    def observe(self, pdd: float) -> None:
        """Track the primal-dual difference after an iteration.

        Raises
        ------
         NumericalStagnation
            If |pdd| decreased by less than `stagnation_threshold` in each of the last
            `stagnation_window` iterations.

        """
        previous = self._previous_pdd
        self._previous_pdd = pdd
        if previous is None or previous == 0.0:
            return

        ratio = 1.0 - abs(pdd) / abs(previous)
        if ratio < self.stagnation_threshold:
            self._n_stalled += 1
        else:
            self._n_stalled = 0

        if self._n_stalled >= self.stagnation_window:
            self._n_stalled = 0
            raise NumericalStagnation(
                f"Duality gap stagnated in {self.dtype.name}", ratio
            )

    def promote(self) -> np.dtype:
        """Move to the next precision level.

        Returns
        -------
         dtype : np.dtype
            The new floating point type.

        """
        if self.is_final:
            raise ValueError(f"Already at the highest precision, {self.dtype.name}.")

        self.level += 1
        self._previous_pdd = None
        self._n_stalled = 0
        return self.dtype


def promote_problem(master: QPData, dtype: np.dtype) -> QPData:
    """Problem data at the new precision, converted from the double precision copy."""
    return master.astype(dtype)


def promote_point(pt: Point, dtype: np.dtype) -> Point:
    """Convert the iterate to the new precision."""
    return pt.astype(dtype)
