"""Solve a quadratic program in one call."""

import dataclasses
from typing import Optional

from .driver import InteriorPointMethod
from .model import QuadraticModel
from .results import Statistics
from .settings import Configuration


def solve(
    qm: QuadraticModel, configuration: Optional[Configuration] = None, **overrides
) -> Statistics:
    """Solve a convex quadratic program with an interior point method.

    Parameters
    ----------
     qm : QuadraticModel
        The problem.
     configuration : Configuration, optional
        Settings. Defaults to `Configuration()`.
     **overrides
        Fields of `Configuration` to override, e.g. `scaling=False` or
        `mode="multi"`.

    Returns
    -------
     stats : Statistics
        Solution and termination status.

    """
    if configuration is None:
        configuration = Configuration(**overrides)
    elif overrides:
        configuration = dataclasses.replace(configuration, **overrides)

    return InteriorPointMethod(configuration).solve(qm)
