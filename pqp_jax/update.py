"""The PQP multiplicative update.

Given the split Q = Qp - Qn, h = hp - hn, one iteration is

    x <- max(x, epsilon)
    x <- x * (Qn x + hp) / (Qp x + hn)
    x <- min(x, maxval)                      (only when an upper bound is set)

Numerator and denominator are the gradients of two quadratic forms with
non-negative gradients whose difference is the gradient of f, so the ratio
is a multiplicative majorization-minimization step: for x > 0 it never
increases f. Each coordinate needs two inner products, one division and
one multiplication, and the coordinates are independent given the two
products.

Two schedules are provided. ``synchronous_update`` is the Jacobi form used
by default. ``gauss_seidel_update`` sweeps the coordinates in order and lets
each one read the already-updated earlier coordinates; it removes the
synchronization point between the two products and the update at the cost
of the data-parallel structure.
"""

from collections.abc import Callable
from typing import Optional

import jax
import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, Float, jaxtyped

from pqp_jax.split import Split
from pqp_jax.types import UpdateSchedule, Vector

UpperBound = Optional[Float[Array, "..."]]


@jaxtyped(typechecker=beartype)
def synchronous_update(
    split: Split,
    x: Vector,
    epsilon: float,
    maxval: UpperBound = None,
) -> Vector:
    """Apply one synchronous PQP iteration.

    Args:
        split: Non-negative split of (Q, h).
        x: Current iterate.
        epsilon: Lower floor applied before the update.
        maxval: Optional scalar or per-coordinate upper bound, applied after
            the update.

    Returns:
        The updated iterate.
    """
    # Elements stuck at exactly 0 could never leave the boundary
    x = jnp.maximum(x, epsilon)
    x = x * (split.Qn @ x + split.hp) / (split.Qp @ x + split.hn)
    if maxval is not None:
        x = jnp.minimum(x, maxval)
    return x


@jaxtyped(typechecker=beartype)
def gauss_seidel_update(
    split: Split,
    x: Vector,
    epsilon: float,
    maxval: UpperBound = None,
) -> Vector:
    """Apply one PQP sweep, updating coordinates in place one at a time.

    Coordinate i is updated with the values of coordinates 0..i-1 already
    taken from this sweep. The epsilon floor is applied once, at the start
    of the sweep; the upper bound is applied to each coordinate as soon as
    it is updated.

    Args:
        split: Non-negative split of (Q, h).
        x: Current iterate.
        epsilon: Lower floor applied before the sweep.
        maxval: Optional scalar or per-coordinate upper bound.

    Returns:
        The updated iterate.
    """
    x = jnp.maximum(x, epsilon)
    upper = None if maxval is None else jnp.broadcast_to(maxval, x.shape)

    def update_coordinate(i, x):
        numerator = jnp.dot(split.Qn[i], x) + split.hp[i]
        denominator = jnp.dot(split.Qp[i], x) + split.hn[i]
        xi = x[i] * numerator / denominator
        if upper is not None:
            xi = jnp.minimum(xi, upper[i])
        return x.at[i].set(xi)

    return jax.lax.fori_loop(0, x.shape[0], update_coordinate, x)


UPDATES: dict[UpdateSchedule, Callable[..., Vector]] = {
    UpdateSchedule.SYNCHRONOUS: synchronous_update,
    UpdateSchedule.GAUSS_SEIDEL: gauss_seidel_update,
}
