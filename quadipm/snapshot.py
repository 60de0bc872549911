"""Save the Newton systems for offline inspection.

At every iteration the interior point method solves two linear systems with the
predictor-corrector method (the affine system and the corrector-centering system), or
one with the infeasible path-following method. When enabled, a snapshot writes
    {prefix}K_iter{k}.mtx          the system matrix, Matrix Market coordinate format
    {prefix}rhs_iter{k}_{tag}.rhs  one dense right hand side per system
every `period` iterations starting at iteration `first`. For example, with
first=4 and period=3, iterations 4, 7, 10, ... are saved. Tags are "aff" and "cc"
for the predictor-corrector method and "ipf" for infeasible path-following.

The files can be read back with `scipy.io.mmread` and `numpy.loadtxt`.

Solvers that never form the K2 matrix, such as the normal equations solver, have no
system to save; their snapshots hold only the right hand sides.

"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
import numpy.typing as npt
from scipy import io, sparse

from .exceptions import SnapshotWriteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotPolicy:
    """When and where to save the Newton systems.

    Parameters
    ----------
    enabled : bool, default=False
        Whether to save anything.
    prefix : str, default=""
        Prefix of the file names, possibly including a directory.
    first : int, default=0
        First iteration to save. Iterations are counted from zero.
    period : int, default=1
        Save every `period` iterations.

    """

    enabled: bool = False
    prefix: str = ""
    first: int = 0
    period: int = 1

    def __post_init__(self) -> None:
        if self.first < 0:
            raise ValueError("first must be nonnegative.")
        if self.period < 1:
            raise ValueError("period must be at least 1.")


def should_snapshot(iteration: int, policy: SnapshotPolicy) -> bool:
    """Determine whether the systems of this iteration should be saved."""
    return (
        policy.enabled
        and iteration >= policy.first
        and (iteration - policy.first) % policy.period == 0
    )


def matrix_path(iteration: int, policy: SnapshotPolicy) -> str:
    """File name of the system matrix."""
    return f"{policy.prefix}K_iter{iteration}.mtx"


def rhs_path(iteration: int, tag: str, policy: SnapshotPolicy) -> str:
    """File name of a right hand side."""
    return f"{policy.prefix}rhs_iter{iteration}_{tag}.rhs"


def write_system(
    iteration: int,
    system: Optional[object],
    rhs_by_tag: Dict[str, npt.NDArray],
    policy: SnapshotPolicy,
) -> None:
    """Write the system matrix and right hand sides.

    Parameters
    ----------
     iteration : int
        Iteration index, used in the file names.
     system : sparse matrix or None
        System matrix. Nothing is written for it when None.
     rhs_by_tag : dict
        Right hand sides, keyed by step tag.
     policy : SnapshotPolicy
        Where to write.

    Raises
    ------
     SnapshotWriteError
        If a file could not be written.

    """
    if system is not None:
        path = matrix_path(iteration, policy)
        try:
            io.mmwrite(path, sparse.coo_matrix(system))
        except OSError as e:
            raise SnapshotWriteError("Could not write system matrix", path) from e

    for tag, rhs in rhs_by_tag.items():
        path = rhs_path(iteration, tag, policy)
        try:
            np.savetxt(path, np.asarray(rhs, dtype=np.float64))
        except OSError as e:
            raise SnapshotWriteError("Could not write right hand side", path) from e


def maybe_snapshot(
    iteration: int,
    system: Optional[object],
    rhs_by_tag: Dict[str, npt.NDArray],
    policy: SnapshotPolicy,
) -> bool:
    """Write a snapshot if the policy asks for one.

    Snapshots are purely observational: this never modifies its arguments, and write
    failures are logged rather than raised.

    Returns
    -------
     written : bool
        True if a snapshot was written, False if none was due or writing failed.

    """
    if not should_snapshot(iteration, policy):
        return False

    try:
        write_system(iteration, system, rhs_by_tag, policy)
    except SnapshotWriteError as e:
        logger.warning("Snapshot of iteration %d failed: %s", iteration, e)
        return False

    return True
