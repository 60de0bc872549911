"""Custom exceptions."""

from typing import Optional


class QuadIPMError(Exception):
    """Base class for interior point errors."""

    def __init__(self, message: str) -> None:
        self.message = message

    def __str__(self) -> str:
        """Pretty-print error."""
        return self.message


class DimensionMismatch(QuadIPMError, ValueError):
    """Raised when the problem data have inconsistent shapes."""


class FactorizationError(QuadIPMError):
    """Raised when regularization could not restore a factorizable system.

    The plugin bumps the regularization a bounded number of times before giving up.

    """

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        rho: Optional[float] = None,
        delta: Optional[float] = None,
    ) -> None:
        self.message = message
        self.attempts = attempts
        self.rho = rho
        self.delta = delta

    def __str__(self) -> str:
        """Pretty-print error."""
        if self.rho is None or self.delta is None:
            return self.message

        return (
            f"{self.message} ({self.attempts} attempt(s); "
            f"rho = {self.rho:.03g}, delta = {self.delta:.03g})"
        )


class NumericalStagnation(QuadIPMError):
    """Raised when progress stalls at the current precision."""

    def __init__(self, message: str, ratio: float) -> None:
        self.message = message
        self.ratio = ratio

    def __str__(self) -> str:
        """Pretty-print error."""
        return f"{self.message} (gap reduction ratio = {self.ratio:.03g})"


class IterationBudgetExceeded(QuadIPMError):
    """Raised when the iteration or time budget is exhausted."""

    def __init__(self, message: str, iterations: int, elapsed: float) -> None:
        self.message = message
        self.iterations = iterations
        self.elapsed = elapsed

    def __str__(self) -> str:
        """Pretty-print error."""
        return (
            f"{self.message} ({self.iterations} iteration(s) in "
            f"{self.elapsed:.03f} s)"
        )


class SnapshotWriteError(QuadIPMError):
    """Raised when a system snapshot cannot be written."""

    def __init__(self, message: str, path: str) -> None:
        self.message = message
        self.path = path

    def __str__(self) -> str:
        """Pretty-print error."""
        return f"{self.message}: {self.path}"
