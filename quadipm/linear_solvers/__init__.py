"""Linear solvers for the Newton systems of the interior point method."""

from .base import (
    PreallocatedData,
    SolverParams,
    available_solvers,
    check_finite,
    get_solver,
    register_solver,
)
from .k1_cholesky import K1CholeskyData, K1CholeskyParams
from .k2_ldl import K2LDLData, K2LDLParams
from .k2_lu import K2LUData, K2LUParams
from .k2_minres import K2MINRESData, K2MINRESParams

register_solver("k2_ldl", K2LDLParams)
register_solver("k2_lu", K2LUParams)
register_solver("k2_minres", K2MINRESParams)
register_solver("k1_cholesky", K1CholeskyParams)

__all__ = [
    "K1CholeskyData",
    "K1CholeskyParams",
    "K2LDLData",
    "K2LDLParams",
    "K2LUData",
    "K2LUParams",
    "K2MINRESData",
    "K2MINRESParams",
    "PreallocatedData",
    "SolverParams",
    "available_solvers",
    "check_finite",
    "get_solver",
    "register_solver",
]
