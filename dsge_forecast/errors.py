"""
Error Types
===========

Exceptions raised by the solver, the Kalman filter and the forecast pipeline.

- SolverError: the rational expectations solution does not exist, is not
  unique, or the generalized Schur decomposition broke down. The parameter
  draw is inadmissible.
- FilterDomainError: a covariance matrix in the filter recursion is not
  positive semidefinite. The draw yields no usable forecast.
- ConfigurationError: the forecast request itself is invalid. Raised before
  any computation starts.
"""

from typing import Tuple


class SolverError(Exception):
    """
    Raised when gensys or Klein cannot produce a unique stable solution.

    Attributes:
        eu: (existence, uniqueness) flags. 1 = true, 0 = false,
            -2 = coincident zeros in the pencil, -3 = decomposition failure.
        msg: Diagnostic message
    """

    def __init__(self, msg: str = "Error in gensys", eu: Tuple[int, int] = (0, 0)):
        super().__init__(msg)
        self.msg = msg
        self.eu = tuple(int(flag) for flag in eu)

    def __str__(self) -> str:
        return f"{self.msg} (eu = {list(self.eu)})"


class FilterDomainError(ArithmeticError):
    """Raised when a filter covariance becomes non-positive-semidefinite."""

    def __init__(self, msg: str, period: int = -1):
        super().__init__(msg)
        self.period = period


class ConfigurationError(ValueError):
    """Raised for invalid forecast requests (caller mistakes)."""
