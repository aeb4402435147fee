"""Inequality-constrained QPs solved through their KKT dual.

PQP only handles non-negativity (and box) constraints on its variable, but
a strictly convex QP with general linear inequalities

    minimize    (1/2) z^T H z + f^T z
    subject to  A z <= b

has a dual of exactly that form. With the Lagrangian
L(z, lam) = (1/2) z^T H z + f^T z + lam^T (A z - b), stationarity gives

    z(lam) = -H^{-1} (f + A^T lam)

and the dual problem, written as a minimization, is

    minimize    (1/2) lam^T (A H^{-1} A^T) lam - h^T lam
    subject to  lam >= 0,        h = -(A H^{-1} f + b).

The dual is built with a Cholesky factorization of H, which must be
symmetric positive definite.
"""

from typing import Any, NamedTuple

import jax.numpy as jnp
import jax.scipy.linalg as jsl
from beartype import beartype
from jaxtyping import Array, Float, jaxtyped

from pqp_jax.exceptions import DimensionMismatchError, MissingArgumentError
from pqp_jax.objective import QPData
from pqp_jax.solver import PQPSolution, solve


class DualSolution(NamedTuple):
    """Result of ``solve_inequality_qp``.

    Attributes:
        z: Primal solution recovered from the multipliers.
        lam: Lagrange multipliers of the inequality constraints.
        dual: Solution of the dual PQP problem.
    """

    z: Float[Array, " n"]
    lam: Float[Array, " m"]
    dual: PQPSolution


def _check_shapes(H: Any, f: Any, A: Any, b: Any = None) -> None:
    if H is None or f is None or A is None:
        raise MissingArgumentError("Need at least H, f and A")
    if f.ndim != 1:
        raise DimensionMismatchError(f"f must be a vector, got shape {f.shape}")
    n = f.shape[0]
    if H.shape != (n, n):
        raise DimensionMismatchError(
            f"H and f are inconsistent sizes: H.shape={H.shape}, len(f)={n}"
        )
    if A.ndim != 2 or A.shape[1] != n:
        raise DimensionMismatchError(f"A must have {n} columns, got shape {A.shape}")
    if b is not None and b.shape != (A.shape[0],):
        raise DimensionMismatchError(
            f"b must have length {A.shape[0]}, got shape {b.shape}"
        )


@jaxtyped(typechecker=beartype)
def _dual_data(
    H: Float[Array, "n n"],
    f: Float[Array, " n"],
    A: Float[Array, "m n"],
    b: Float[Array, " m"],
) -> QPData:
    factor = jsl.cho_factor(H)
    H_inv_At = jsl.cho_solve(factor, A.T)  # (n, m)
    H_inv_f = jsl.cho_solve(factor, f)
    Q = A @ H_inv_At
    # Symmetrize against round-off in the triangular solves
    Q = 0.5 * (Q + Q.T)
    return QPData(Q=Q, h=-(A @ H_inv_f + b))


def inequality_qp_dual(H: Any, f: Any, A: Any, b: Any) -> QPData:
    """Build the non-negative dual of min (1/2) z^T H z + f^T z s.t. A z <= b.

    Args:
        H: Symmetric positive definite matrix (n x n).
        f: Linear term (n,).
        A: Constraint matrix (m x n).
        b: Constraint right-hand side (m,).

    Returns:
        ``QPData(Q, h)`` with Q = A H^{-1} A^T and h = -(A H^{-1} f + b).

    Raises:
        MissingArgumentError: H, f or A is None.
        DimensionMismatchError: The shapes disagree.
    """
    if b is None:
        raise MissingArgumentError("Need the constraint right-hand side b")
    H, f, A, b = (None if a is None else jnp.asarray(a) for a in (H, f, A, b))
    _check_shapes(H, f, A, b)
    dtype = jnp.result_type(H.dtype, f.dtype, A.dtype, b.dtype, float)
    return _dual_data(H.astype(dtype), f.astype(dtype), A.astype(dtype), b.astype(dtype))


def recover_primal(H: Any, f: Any, A: Any, lam: Any) -> Float[Array, " n"]:
    """Recover z = -H^{-1} (f + A^T lam) from the dual multipliers.

    Args:
        H: Symmetric positive definite matrix (n x n).
        f: Linear term (n,).
        A: Constraint matrix (m x n).
        lam: Non-negative multipliers (m,).

    Returns:
        The primal point minimizing the Lagrangian for the given multipliers.
    """
    if lam is None:
        raise MissingArgumentError("Need the multipliers lam")
    H, f, A, lam = (None if a is None else jnp.asarray(a) for a in (H, f, A, lam))
    _check_shapes(H, f, A, lam)
    dtype = jnp.result_type(H.dtype, f.dtype, A.dtype, lam.dtype, float)
    H, f, A, lam = (a.astype(dtype) for a in (H, f, A, lam))
    return -jsl.cho_solve(jsl.cho_factor(H), f + A.T @ lam)


def solve_inequality_qp(H: Any, f: Any, A: Any, b: Any, **solve_kwargs) -> DualSolution:
    """Solve min (1/2) z^T H z + f^T z s.t. A z <= b with PQP on the dual.

    Args:
        H: Symmetric positive definite matrix (n x n).
        f: Linear term (n,).
        A: Constraint matrix (m x n).
        b: Constraint right-hand side (m,).
        **solve_kwargs: Forwarded to ``solve`` for the dual problem (``x0``,
            ``max_steps``, ``track_objective``, ``config``).

    Returns:
        A ``DualSolution`` holding the primal point, the multipliers and the
        dual solve.

    Example:
        >>> import jax.numpy as jnp
        >>> from pqp_jax import solve_inequality_qp
        >>> # minimize (1/2)|z|^2 subject to z_0 + z_1 >= 2
        >>> sol = solve_inequality_qp(
        ...     jnp.eye(2), jnp.zeros(2), jnp.array([[-1.0, -1.0]]), jnp.array([-2.0])
        ... )
        >>> sol.z  # approximately [1, 1]
    """
    Q, h = inequality_qp_dual(H, f, A, b)
    dual = solve(Q, h, **solve_kwargs)
    z = recover_primal(H, f, A, dual.x)
    return DualSolution(z=z, lam=dual.x, dual=dual)
