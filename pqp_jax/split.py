"""Splitting of the quadratic objective for the PQP fixpoint.

The objective f(x) = (1/2) x^T Q x - h^T x is written as the difference of
two quadratic forms whose gradients are non-negative for x >= 0:

    Q = Qp - Qn,    h = hp - hn,    with Qp, Qn, hp, hn >= 0 elementwise.

The multiplicative update uses the ratio of the two gradients, so the
split determines both the cost of an iteration (fill of Qp and Qn) and the
strength of the contraction guarantee. Every policy below is a pure
function (Q, h, epsilon) -> Split and shares the same regularization:

    Qp[i, i] += epsilon,    hp *= (1 + epsilon)

which keeps the denominator Qp x + hn strictly positive for x > 0.
"""

from collections.abc import Callable

import equinox as eqx
import jax.numpy as jnp
from beartype import beartype
from jaxtyping import jaxtyped

from pqp_jax.types import Matrix, SplitPolicy, Vector


class Split(eqx.Module):
    """Non-negative decomposition of (Q, h).

    Attributes:
        Qp: Positive part of Q (plus any fill added by the policy).
        Qn: Negative part, ``Qp - Q``.
        hp: Positive part of h, ``max(h, 0) * (1 + epsilon)``.
        hn: Negative part, ``hp - h``.
    """

    Qp: Matrix
    Qn: Matrix
    hp: Vector
    hn: Vector


def _complete_split(
    Q: Matrix, h: Vector, Qp: Matrix, hp: Vector, epsilon: float
) -> Split:
    """Regularize the positive parts and derive the negative parts."""
    n = Q.shape[0]
    Qp = Qp + epsilon * jnp.eye(n, dtype=Qp.dtype)
    hp = hp * (1.0 + epsilon)
    return Split(Qp=Qp, Qn=Qp - Q, hp=hp, hn=hp - h)


@jaxtyped(typechecker=beartype)
def simple_split(Q: Matrix, h: Vector, epsilon: float) -> Split:
    """Split Q and h into their elementwise positive and negative parts.

    Qp reuses the sparsity pattern of Q. This is the cheapest split but gives
    the weakest convergence guarantee when Q is only semidefinite.

    Args:
        Q: Symmetric positive semidefinite matrix (n x n).
        h: Linear term (n,).
        epsilon: Diagonal regularization.

    Returns:
        The regularized split.
    """
    return _complete_split(Q, h, jnp.maximum(Q, 0.0), jnp.maximum(h, 0.0), epsilon)


@jaxtyped(typechecker=beartype)
def diagonal_dominance_split(Q: Matrix, h: Vector, epsilon: float) -> Split:
    """Simple split with Qp pushed into diagonal dominance.

    Each diagonal entry of Qp is increased by the row sum of the negative
    part ``max(Q, 0) - Q``, so that Qp - Q is diagonally dominant:

        Qp[i, i] = max(Q[i, i], 0) + sum_j max(-Q[i, j], 0)

    Args:
        Q: Symmetric positive semidefinite matrix (n x n).
        h: Linear term (n,).
        epsilon: Diagonal regularization.

    Returns:
        The regularized split.
    """
    Qp = jnp.maximum(Q, 0.0)
    Qp = Qp + jnp.diag(jnp.sum(Qp - Q, axis=1))
    return _complete_split(Q, h, Qp, jnp.maximum(h, 0.0), epsilon)


@jaxtyped(typechecker=beartype)
def abs_value_split(Q: Matrix, h: Vector, epsilon: float) -> Split:
    """Split with Qp = |Q|, so Qn carries twice the negative part of Q.

    Denser than the simple split but more robust on ill-conditioned or
    near-singular Q.

    Args:
        Q: Symmetric positive semidefinite matrix (n x n).
        h: Linear term (n,).
        epsilon: Diagonal regularization.

    Returns:
        The regularized split.
    """
    return _complete_split(Q, h, jnp.abs(Q), jnp.maximum(h, 0.0), epsilon)


_SPLITS: dict[SplitPolicy, Callable[[Matrix, Vector, float], Split]] = {
    SplitPolicy.SIMPLE: simple_split,
    SplitPolicy.DIAGONAL_DOMINANCE: diagonal_dominance_split,
    SplitPolicy.ABS_VALUE: abs_value_split,
}


def build_split(
    Q: Matrix,
    h: Vector,
    policy: SplitPolicy | str = SplitPolicy.SIMPLE,
    epsilon: float = 1e-6,
) -> Split:
    """Build the split of (Q, h) for the given policy.

    Args:
        Q: Symmetric positive semidefinite matrix (n x n).
        h: Linear term (n,).
        policy: A ``SplitPolicy`` or its string value.
        epsilon: Diagonal regularization.

    Returns:
        The regularized split, constant for the whole solve.
    """
    return _SPLITS[SplitPolicy(policy)](Q, h, epsilon)
