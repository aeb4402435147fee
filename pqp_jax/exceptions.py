"""Exceptions raised by PQP-JAX.

Only structural problems with the inputs are reported. Numerical
assumptions on Q (symmetry, positive semi-definiteness) are never checked.
"""


class PQPError(Exception):
    """Base class for all PQP-JAX errors."""


class MissingArgumentError(PQPError, TypeError):
    """Raised when the matrix Q or the vector h is not supplied."""


class DimensionMismatchError(PQPError, ValueError):
    """Raised when array shapes are inconsistent with the problem size n."""


class DegenerateDiagonalError(PQPError, ValueError):
    """Raised when the default initial guess meets a non-positive Q[i, i]."""
