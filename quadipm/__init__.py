"""Interior point method for convex quadratic programs."""

from .api import solve
from .driver import InteriorPointMethod
from .exceptions import (
    DimensionMismatch,
    FactorizationError,
    IterationBudgetExceeded,
    NumericalStagnation,
    QuadIPMError,
    SnapshotWriteError,
)
from .linear_solvers import (
    K1CholeskyParams,
    K2LDLParams,
    K2LUParams,
    K2MINRESParams,
    PreallocatedData,
    SolverParams,
    available_solvers,
    get_solver,
    register_solver,
)
from .model import QuadraticModel
from .results import Statistics, Status
from .settings import Configuration, Mode, Strategy, Tolerances
from .snapshot import SnapshotPolicy

__all__ = [
    "solve",
    "InteriorPointMethod",
    "QuadraticModel",
    "Configuration",
    "Tolerances",
    "Mode",
    "Strategy",
    "SnapshotPolicy",
    "Statistics",
    "Status",
    "SolverParams",
    "PreallocatedData",
    "K2LDLParams",
    "K2LUParams",
    "K2MINRESParams",
    "K1CholeskyParams",
    "available_solvers",
    "get_solver",
    "register_solver",
    "QuadIPMError",
    "DimensionMismatch",
    "FactorizationError",
    "NumericalStagnation",
    "IterationBudgetExceeded",
    "SnapshotWriteError",
]
