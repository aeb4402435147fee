"""Type definitions for PQP-JAX.

This module contains type aliases and enumerations used throughout the package.
Array types use jaxtyping for runtime shape checking with beartype.
"""

import enum

from jaxtyping import Array, Float

# Type aliases for common array shapes
Scalar = Float[Array, ""]
Vector = Float[Array, " n"]
Matrix = Float[Array, "n n"]


class SplitPolicy(str, enum.Enum):
    """How Q is split into the non-negative pair (Qp, Qn).

    SIMPLE keeps the sparsity pattern of Q and is the fastest choice.
    DIAGONAL_DOMINANCE and ABS_VALUE trade extra fill for a stronger
    contraction guarantee on semidefinite or ill-conditioned problems.
    """

    SIMPLE = "simple"
    DIAGONAL_DOMINANCE = "diagonal_dominance"
    ABS_VALUE = "abs_value"


class UpdateSchedule(str, enum.Enum):
    """Order in which the coordinates of x are updated within an iteration.

    SYNCHRONOUS updates every coordinate from the previous iterate (Jacobi
    style) and is fully data-parallel. GAUSS_SEIDEL sweeps the coordinates
    in order, each update reading the already-updated earlier coordinates.
    """

    SYNCHRONOUS = "synchronous"
    GAUSS_SEIDEL = "gauss_seidel"


# Result codes for solver termination
class SolverResult:
    """Constants for solver termination status."""

    CONVERGED = 0
    MAX_ITERATIONS = 1
