"""PQP solver: driver loop, convergence test and optimistix minimiser.

This module contains two ways to run the Parallel Quadratic Programming
iteration on

    minimize    f(x) = (1/2) x^T Q x - h^T x
    subject to  x >= 0  (and optionally x <= maxval)

1. ``solve``: the primary entry point. Validates the inputs in Python,
   builds the split, then runs the whole iteration inside a single
   ``jax.lax.while_loop`` compiled with ``eqx.filter_jit``.
2. ``PQP``: an ``optimistix.AbstractMinimiser`` running the same update
   one step at a time, for use with ``optx.minimise``.

Convergence is tested every ``check_every`` iterations (32 by default)
with the KKT metric max_i x_i |(Q x - h)_i|. When the budget runs out the
last iterate is returned; this is a normal result, not an error.
"""

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Any, NamedTuple, Optional

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np
import optimistix as optx
import optimistix._misc as optx_misc
from beartype import beartype
from jaxtyping import Array, ArrayLike, Bool, Float, Int, jaxtyped

from pqp_jax.config import PQPConfig
from pqp_jax.exceptions import (
    DegenerateDiagonalError,
    DimensionMismatchError,
    MissingArgumentError,
)
from pqp_jax.objective import QPData, kkt_residual, quadratic_objective
from pqp_jax.split import Split, build_split
from pqp_jax.types import Matrix, SolverResult, Vector
from pqp_jax.update import UPDATES

logger = logging.getLogger(__name__)


@jaxtyped(typechecker=beartype)
def initial_guess(Q: Matrix, h: Vector) -> Vector:
    """Heuristic strictly positive starting point.

        x0_i = (mean(|h|) + |h_i|) / Q[i, i]

    Requires Q[i, i] > 0 for every i. The check is done by ``solve``; this
    function divides unconditionally so that it can be traced.
    """
    abs_h = jnp.abs(h)
    return (jnp.mean(abs_h) + abs_h) / jnp.diag(Q)


class PQPState(eqx.Module):
    """State of the PQP iteration.

    Attributes:
        x: Current iterate.
        step_count: Number of updates performed.
        converged: Whether the last KKT check passed.
        kkt_residual: KKT metric at the last check (inf before the first).
        values: Objective history buffer of length ``max_steps + 1`` when
            tracking is requested, empty otherwise. Entries past
            ``step_count`` are NaN.
    """

    x: Float[Array, " n"]
    step_count: Int[Array, ""]
    converged: Bool[Array, ""]
    kkt_residual: Float[Array, ""]
    values: Float[Array, " m"]


class PQPSolution(NamedTuple):
    """Result of ``solve``.

    Attributes:
        x: Final iterate.
        values: Objective values, the initial one first and then one per
            iteration, or None when tracking was not requested.
        result: ``SolverResult.CONVERGED`` or ``SolverResult.MAX_ITERATIONS``.
        num_steps: Number of iterations performed.
        kkt_residual: KKT metric at the returned iterate.
    """

    x: Float[Array, " n"]
    values: Optional[Float[Array, " k"]]
    result: int
    num_steps: int
    kkt_residual: float


def _check_due(step_count: Int[Array, ""], check_every: int) -> Bool[Array, ""]:
    return (step_count > 0) & (step_count % check_every == 0)


@eqx.filter_jit
def _iterate(
    Q: Matrix,
    h: Vector,
    split: Split,
    x0: Vector,
    maxval: Optional[Array],
    config: PQPConfig,
    track_objective: bool,
) -> PQPState:
    """Run the PQP iteration until convergence or budget exhaustion."""
    update = UPDATES[config.schedule]
    threshold = config.resolve_threshold(h.shape[0])

    if track_objective:
        values = jnp.full((config.max_steps + 1,), jnp.nan, dtype=x0.dtype)
        values = values.at[0].set(quadratic_objective(x0, Q, h))
    else:
        values = jnp.zeros((0,), dtype=x0.dtype)

    init_state = PQPState(
        x=x0,
        step_count=jnp.array(0),
        converged=jnp.array(False),
        kkt_residual=jnp.array(jnp.inf, dtype=x0.dtype),
        values=values,
    )

    def cond_fn(state: PQPState) -> Bool[Array, ""]:
        return ~state.converged & (state.step_count < config.max_steps)

    def body_fn(state: PQPState) -> PQPState:
        x = update(split, state.x, config.epsilon, maxval)
        step_count = state.step_count + 1

        values = state.values
        if track_objective:
            values = values.at[step_count].set(quadratic_objective(x, Q, h))

        # The KKT metric costs an extra product with Q, so it is only
        # evaluated on check iterations
        check = _check_due(step_count, config.check_every)
        residual = jax.lax.cond(
            check,
            lambda: kkt_residual(x, Q, h),
            lambda: state.kkt_residual,
        )

        return PQPState(
            x=x,
            step_count=step_count,
            converged=check & (residual < threshold),
            kkt_residual=residual,
            values=values,
        )

    return jax.lax.while_loop(cond_fn, body_fn, init_state)


def _as_float_array(a: ArrayLike) -> Array:
    a = jnp.asarray(a)
    return a.astype(jnp.result_type(a.dtype, float))


def _as_vector(a: Any, name: str) -> Array:
    """Convert to a 1-D float array, accepting an (n, 1) column."""
    a = _as_float_array(a)
    if a.ndim == 2 and a.shape[1] == 1:
        return a.reshape(-1)
    if a.ndim != 1:
        raise DimensionMismatchError(
            f"{name} must be a vector of shape (n,) or (n, 1), got shape {a.shape}"
        )
    return a


def _validate_problem(Q: Any, h: Any) -> tuple[Matrix, Vector]:
    """Convert (Q, h) to float arrays and check their shapes."""
    if Q is None or h is None:
        raise MissingArgumentError("Need at least matrix Q and vector h")

    Q = _as_float_array(Q)
    h = _as_vector(h, "h")
    n = h.shape[0]
    if n == 0:
        raise DimensionMismatchError("h must have at least one entry")
    if Q.shape != (n, n):
        raise DimensionMismatchError(
            f"Q and h are inconsistent sizes: Q.shape={Q.shape}, len(h)={n}"
        )
    dtype = jnp.result_type(Q.dtype, h.dtype)
    return Q.astype(dtype), h.astype(dtype)


def _validate_start(x0: Any, Q: Matrix, h: Vector) -> Vector:
    """Return the starting point, computing the heuristic one if needed."""
    n = h.shape[0]
    if x0 is None:
        diag = np.asarray(jnp.diag(Q))
        if np.any(diag <= 0):
            bad = np.flatnonzero(diag <= 0).tolist()
            raise DegenerateDiagonalError(
                "The default initial guess divides by the diagonal of Q, "
                f"which is not positive at indices {bad}; supply x0 instead"
            )
        return initial_guess(Q, h)

    x0 = _as_vector(x0, "x0").astype(h.dtype)
    if x0.shape[0] != n:
        raise DimensionMismatchError(
            f"Initial x must have length {n}, got {x0.shape[0]}"
        )
    return x0


def _validate_upper_bound(maxval: Any, h: Vector) -> Optional[Array]:
    if maxval is None:
        return None
    maxval = _as_float_array(maxval).astype(h.dtype)
    if maxval.size == 1:
        return maxval.reshape(())
    if maxval.shape not in ((h.shape[0],), (h.shape[0], 1)):
        raise DimensionMismatchError(
            f"maxval must be a scalar or have length {h.shape[0]}, "
            f"got shape {maxval.shape}"
        )
    return maxval.reshape(-1)


def solve(
    Q: ArrayLike,
    h: ArrayLike,
    x0: Optional[ArrayLike] = None,
    max_steps: Optional[int] = None,
    maxval: Optional[ArrayLike] = None,
    track_objective: bool = False,
    config: Optional[PQPConfig] = None,
) -> PQPSolution:
    """Minimize (1/2) x^T Q x - h^T x subject to 0 <= x (<= maxval).

    Q is assumed symmetric positive semidefinite; this is not checked, and a
    matrix violating it gives meaningless output rather than an error.

    Args:
        Q: Symmetric positive semidefinite matrix (n x n).
        h: Linear term (n,).
        x0: Optional strictly positive initial guess. When omitted the
            heuristic ``(mean(|h|) + |h|) / diag(Q)`` is used.
        max_steps: Iteration budget; overrides ``config.max_steps``.
        maxval: Optional scalar or length-n upper bound on x.
        track_objective: Whether to record the objective value before the
            first iteration and after every iteration. The history lives in
            a preallocated device buffer of ``max_steps + 1`` entries for
            the whole solve, so memory grows with the budget rather than
            with the number of steps taken; it is trimmed before returning.
        config: Algorithm parameters. Defaults to ``PQPConfig()``.

    Returns:
        A ``PQPSolution``. Its ``result`` is ``SolverResult.MAX_ITERATIONS``
        when the budget ran out before the KKT test passed; ``x`` is then
        the best-effort last iterate.

    Raises:
        MissingArgumentError: Q or h is None.
        DimensionMismatchError: The shapes of Q, h, x0 or maxval disagree.
        DegenerateDiagonalError: x0 is omitted and diag(Q) has a
            non-positive entry.

    Example:
        >>> import jax.numpy as jnp
        >>> from pqp_jax import solve
        >>> sol = solve(jnp.array([[2.0, 0.0], [0.0, 2.0]]), jnp.array([1.0, 1.0]))
        >>> sol.x  # approximately [0.5, 0.5]
    """
    config = PQPConfig() if config is None else config
    if max_steps is not None:
        config = replace(config, max_steps=max_steps)

    Q, h = _validate_problem(Q, h)
    x = _validate_start(x0, Q, h)
    upper = _validate_upper_bound(maxval, h)

    n = h.shape[0]
    logger.debug(
        "PQP solve: n=%d, split=%s, schedule=%s, max_steps=%d",
        n,
        config.split.value,
        config.schedule.value,
        config.max_steps,
    )

    split = build_split(Q, h, config.split, config.epsilon)
    final_state = _iterate(Q, h, split, x, upper, config, track_objective)

    num_steps = int(final_state.step_count)
    converged = bool(final_state.converged)
    residual = float(kkt_residual(final_state.x, Q, h))

    if converged:
        result = SolverResult.CONVERGED
        logger.info("PQP converged after %d iterations (KKT=%.3e)", num_steps, residual)
    else:
        result = SolverResult.MAX_ITERATIONS
        logger.info(
            "PQP stopped at the iteration budget of %d (KKT=%.3e, threshold=%.3e)",
            num_steps,
            residual,
            config.resolve_threshold(n),
        )

    values = final_state.values[: num_steps + 1] if track_objective else None

    return PQPSolution(
        x=final_state.x,
        values=values,
        result=result,
        num_steps=num_steps,
        kkt_residual=residual,
    )


class PQPMinimiserState(eqx.Module):
    """State for the ``PQP`` optimistix minimiser.

    Attributes:
        step_count: Current iteration number.
        split: Split of (Q, h), built once in ``init``.
        f_val: Objective value at the current iterate.
        kkt_residual: KKT metric at the last check.
        converged: Whether the last KKT check passed.
    """

    step_count: Int[Array, ""]
    split: Split
    f_val: Float[Array, ""]
    kkt_residual: Float[Array, ""]
    converged: Bool[Array, ""]


class PQP(optx.AbstractMinimiser):
    """Parallel Quadratic Programming as an optimistix minimiser.

    The problem data is passed as ``args=QPData(Q, h)`` and the objective
    function should be ``pqp_objective``; it is only evaluated to report the
    objective value, the update itself works directly on the split.

    Attributes:
        rtol: Unused by the KKT test; kept for the optimistix interface.
        atol: Unused by the KKT test; kept for the optimistix interface.
        config: Algorithm parameters.
        maxval: Optional scalar or per-coordinate upper bound on x.

    Example:
        >>> import jax.numpy as jnp
        >>> import optimistix as optx
        >>> from pqp_jax import PQP, QPData, pqp_objective
        >>>
        >>> Q = jnp.array([[2.0, 0.0], [0.0, 2.0]])
        >>> h = jnp.array([1.0, 1.0])
        >>> sol = optx.minimise(
        ...     pqp_objective, PQP(), jnp.ones(2), args=QPData(Q, h), has_aux=True
        ... )
    """

    rtol: float = 1e-6
    atol: float = 1e-6

    # Norm function (required by AbstractMinimiser)
    norm: Callable = eqx.field(static=True, default=optx_misc.max_norm)

    config: PQPConfig = eqx.field(default_factory=PQPConfig)
    maxval: Optional[Float[Array, "..."]] = eqx.field(
        default=None, converter=lambda v: None if v is None else _as_float_array(v)
    )

    def init(
        self,
        fn: Callable,
        y: Float[Array, " n"],
        args: Any,
        options: dict[str, Any],
        f_struct: Any,
        aux_struct: Any,
        tags: frozenset[object],
    ) -> PQPMinimiserState:
        """Build the split and evaluate the objective at the starting point.

        Args:
            fn: Objective function with signature fn(y, args) -> (f_val, aux).
            y: Initial iterate, strictly positive.
            args: ``QPData(Q, h)``.
            options: Runtime options dictionary.
            f_struct: Structure of function output.
            aux_struct: Structure of auxiliary output.
            tags: Lineax tags for the problem.

        Returns:
            Initial PQPMinimiserState.
        """
        Q, h = args
        f_val, _aux = fn(y, args)

        return PQPMinimiserState(
            step_count=jnp.array(0),
            split=build_split(Q, h, self.config.split, self.config.epsilon),
            f_val=f_val,
            kkt_residual=jnp.array(jnp.inf, dtype=y.dtype),
            converged=jnp.array(False),
        )

    def step(
        self,
        fn: Callable,
        y: Float[Array, " n"],
        args: Any,
        options: dict[str, Any],
        state: PQPMinimiserState,
        tags: frozenset[object],
    ) -> tuple[Float[Array, " n"], PQPMinimiserState, Any]:
        """Perform one multiplicative update and, when due, the KKT check."""
        Q, h = args
        update = UPDATES[self.config.schedule]
        y_new = update(state.split, y, self.config.epsilon, self.maxval)
        f_val_new, aux = fn(y_new, args)

        step_count = state.step_count + 1
        check = _check_due(step_count, self.config.check_every)
        residual = jax.lax.cond(
            check,
            lambda: kkt_residual(y_new, Q, h),
            lambda: state.kkt_residual,
        )
        threshold = self.config.resolve_threshold(y.shape[0])

        new_state = PQPMinimiserState(
            step_count=step_count,
            split=state.split,
            f_val=f_val_new,
            kkt_residual=residual,
            converged=check & (residual < threshold),
        )
        return y_new, new_state, aux

    def terminate(
        self,
        fn: Callable,
        y: Float[Array, " n"],
        args: Any,
        options: dict[str, Any],
        state: PQPMinimiserState,
        tags: frozenset[object],
    ) -> tuple[Bool[Array, ""], Any]:
        """Stop on a passed KKT check or when ``config.max_steps`` is reached."""
        max_iters_reached = state.step_count >= self.config.max_steps
        done = state.converged | max_iters_reached

        result = jax.lax.cond(
            state.converged,
            lambda: optx.RESULTS.successful,
            lambda: jax.lax.cond(
                max_iters_reached,
                lambda: optx.RESULTS.max_steps_reached,
                lambda: optx.RESULTS.successful,  # Still running
            ),
        )
        return done, result

    def postprocess(
        self,
        fn: Callable,
        y: Float[Array, " n"],
        aux: Any,
        args: Any,
        options: dict[str, Any],
        state: PQPMinimiserState,
        tags: frozenset[object],
        result: Any,
    ) -> tuple[Float[Array, " n"], Any, dict[str, Any]]:
        """Return the iterate with solver statistics."""
        stats = {
            "num_steps": state.step_count,
            "final_objective": state.f_val,
            "kkt_residual": state.kkt_residual,
        }
        return y, aux, stats
