"""Objective and optimality measures for the non-negative QP.

The problem is:
    minimize    f(x) = (1/2) x^T Q x - h^T x
    subject to  x >= 0

Its KKT conditions are x >= 0, dual feasibility Q x - h >= 0 and
complementary slackness x_i (Q x - h)_i = 0. The solver measures the last
one with the metric

    r(x) = max_i x_i |(Q x - h)_i|

which is driven to zero by the multiplicative update.
"""

from typing import Any, NamedTuple

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import jaxtyped

from pqp_jax.types import Matrix, Scalar, Vector


class QPData(NamedTuple):
    """Problem data (Q, h), passed as ``args`` to optimistix."""

    Q: Matrix
    h: Vector


@jaxtyped(typechecker=beartype)
def quadratic_objective(x: Vector, Q: Matrix, h: Vector) -> Scalar:
    """Evaluate f(x) = (1/2) x^T Q x - h^T x."""
    return 0.5 * jnp.dot(x, Q @ x) - jnp.dot(h, x)


@jaxtyped(typechecker=beartype)
def kkt_residual(x: Vector, Q: Matrix, h: Vector) -> Scalar:
    """Compute the complementary-slackness metric max_i x_i |(Q x - h)_i|.

    Args:
        x: Current iterate (non-negative).
        Q: Quadratic term.
        h: Linear term.

    Returns:
        The KKT metric; the solve has converged once it falls below the
        threshold.
    """
    return jnp.max(x * jnp.abs(Q @ x - h))


def pqp_objective(x: Vector, args: QPData) -> tuple[Scalar, Any]:
    """Objective in the ``fn(y, args) -> (value, aux)`` form used by optimistix."""
    Q, h = args
    return quadratic_objective(x, Q, h), None
