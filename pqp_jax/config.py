"""Configuration for the PQP solver.

All numeric constants of the algorithm live here instead of being
hard-coded in the iteration, so that a single immutable object describes
how a solve is run.
"""

from typing import Optional

import equinox as eqx

from pqp_jax.types import SplitPolicy, UpdateSchedule

DEFAULT_EPSILON = 1e-6
DEFAULT_MAX_STEPS = 10_000
DEFAULT_CHECK_EVERY = 32


class PQPConfig(eqx.Module):
    """Algorithm parameters for a PQP solve.

    Every field is static, so a config can be closed over or passed through
    ``eqx.filter_jit`` without being traced.

    Attributes:
        epsilon: Negligible positive value. Bounds the iterate away from zero
            and regularizes the diagonal of the split.
        threshold: Convergence tolerance on the KKT metric. ``None`` means
            ``n * epsilon``.
        max_steps: Iteration budget. When it is exhausted the last iterate is
            returned as a best-effort result.
        check_every: Number of iterations between two KKT checks.
        split: Split policy used to build (Qp, Qn, hp, hn).
        schedule: Coordinate update schedule.

    Example:
        >>> from pqp_jax import PQPConfig
        >>> config = PQPConfig(split="diagonal_dominance", max_steps=400)
        >>> config.split
        <SplitPolicy.DIAGONAL_DOMINANCE: 'diagonal_dominance'>
    """

    epsilon: float = eqx.field(static=True, default=DEFAULT_EPSILON, converter=float)
    threshold: Optional[float] = eqx.field(static=True, default=None)
    max_steps: int = eqx.field(static=True, default=DEFAULT_MAX_STEPS)
    check_every: int = eqx.field(static=True, default=DEFAULT_CHECK_EVERY)
    split: SplitPolicy = eqx.field(
        static=True, default=SplitPolicy.SIMPLE, converter=SplitPolicy
    )
    schedule: UpdateSchedule = eqx.field(
        static=True, default=UpdateSchedule.SYNCHRONOUS, converter=UpdateSchedule
    )

    def __check_init__(self):
        if not self.epsilon > 0:
            raise ValueError(f"epsilon must be positive, got {self.epsilon}")
        if self.threshold is not None and not self.threshold > 0:
            raise ValueError(f"threshold must be positive, got {self.threshold}")
        if self.max_steps < 0:
            raise ValueError(f"max_steps must be non-negative, got {self.max_steps}")
        if self.check_every < 1:
            raise ValueError(f"check_every must be at least 1, got {self.check_every}")

    def resolve_threshold(self, n: int) -> float:
        """Return the convergence tolerance for a problem of size n."""
        if self.threshold is not None:
            return self.threshold
        return n * self.epsilon
