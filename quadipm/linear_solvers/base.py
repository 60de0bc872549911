"""Linear solver interface.

A linear solver is described by two classes:
- a `SolverParams` subclass holding its parameters, chosen at configuration time and
  shared read-only across solves. Its `initialize` method allocates the solver's
  working memory and performs the first factorization.
- a `PreallocatedData` subclass holding that working memory. It is owned by exactly
  one solve and reused across iterations.

The interior point method only ever calls `initialize`, `refresh` and
`solve_in_place`, and never inspects the internals of a solver. To use your own solver,
subclass both, then either pass an instance of your `SolverParams` subclass in the
configuration or register it with `register_solver`.

"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type

import numpy as np
import numpy.typing as npt

from ..exceptions import FactorizationError
from ..iterate import Point
from ..kkt import Regularization
from ..model import QPData


class SolverParams(ABC):
    """Base class for linear solver parameters.

    Attributes
    ----------
     uplo : str
        Which triangle of the augmented system the solver stores. Only "U" is used by
        the solvers in this package.

    """

    uplo: str = "U"

    @abstractmethod
    def initialize(self, data: QPData, pt: Point) -> "PreallocatedData":
        """Allocate working memory and perform the first factorization.

        Parameters
        ----------
         data : QPData
            The problem, at the precision the solver should work in.
         pt : Point
            The point used to build the first system.

        Returns
        -------
         pad : PreallocatedData
            The solver state.

        Raises
        ------
         FactorizationError
            If no admissible factorization could be computed.

        """


class PreallocatedData(ABC):
    """Base class for the working memory of a linear solver.

    Subclasses implement `update`, which writes the iterate-dependent values into the
    preallocated system, and `factorize`, which attempts a factorization and reports
    whether it is admissible. `refresh` retries with increased regularization a
    bounded number of times.

    """

    def __init__(self, regu: Regularization, max_attempts: int = 5) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        self.regu = regu
        self.max_attempts = max_attempts
        self.attempts = 0

    @property
    def system(self) -> Optional[object]:
        """Assembled matrix, for diagnostics. None if the solver has no matrix."""
        return None

    def update(self, data: QPData, pt: Point) -> None:
        """Write the iterate-dependent values into the system."""

    def factorize(self) -> bool:
        """Factorize the current system. Return False if the factorization failed."""
        return True

    def factorize_with_retries(self, data: QPData, pt: Point) -> int:
        """Update and factorize, bumping the regularization after each failure.

        Returns
        -------
         attempts : int
            Number of factorizations performed.

        Raises
        ------
         FactorizationError
            If `max_attempts` factorizations failed.

        """
        for attempt in range(1, self.max_attempts + 1):
            self.update(data, pt)
            self.attempts = attempt
            if self.factorize():
                return attempt
            self.regu.bump()

        raise FactorizationError(
            "Regularization could not restore a factorizable system",
            attempts=self.max_attempts,
            rho=self.regu.rho,
            delta=self.regu.delta,
        )

    def refresh(self, data: QPData, pt: Point) -> int:
        """Rebuild the system at pt and refactorize it.

        The sparsity pattern is preserved. The regularization decays before the update.

        Returns
        -------
         n_factorizations : int
            Number of factorizations performed.

        """
        self.regu.decay()
        return self.factorize_with_retries(data, pt)

    @abstractmethod
    def solve_in_place(self, rhs: npt.NDArray, step: str) -> npt.NDArray:
        """Overwrite rhs with the solution of the current system.

        Must not refactorize: the affine and corrector-centering systems of an
        iteration share one factorization.

        Parameters
        ----------
         rhs : vector of length nvar + ncon
            Right hand side.
         step : str
            One of "init", "aff", "cc", or "ipf".

        Returns
        -------
         rhs : vector
            The same array, now holding the solution.

        """


def check_finite(sol: npt.NDArray, step: str) -> None:
    """Raise FactorizationError if sol contains NaN or Inf."""
    if not np.all(np.isfinite(sol)):
        raise FactorizationError(
            f"Solution of the {step} system contains non-finite entries"
        )


_REGISTRY: Dict[str, Type[SolverParams]] = {}


def register_solver(name: str, params_cls: Type[SolverParams]) -> None:
    """Make a linear solver available by name."""
    if not (isinstance(params_cls, type) and issubclass(params_cls, SolverParams)):
        raise TypeError("params_cls must be a subclass of SolverParams.")
    _REGISTRY[name] = params_cls


def get_solver(name: str, **kwargs) -> SolverParams:
    """Instantiate a registered linear solver."""
    try:
        params_cls = _REGISTRY[name]
    except KeyError:
        raise ValueError(
            f"Unknown linear solver {name!r}; choose one of {available_solvers()}."
        ) from None
    return params_cls(**kwargs)


def available_solvers() -> List[str]:
    """Names of registered linear solvers."""
    return sorted(_REGISTRY)
