"""PQP-JAX: Parallel Quadratic Programming in pure JAX.

This package implements the PQP multiplicative fixpoint for the
non-negativity (and box) constrained quadratic program

    minimize f(x) = (1/2) x^T Q x - h^T x   subject to x >= 0,

with Q symmetric positive semidefinite. Every coordinate of x is updated by
the ratio of two non-negative gradients, so an iteration costs two
matrix-vector products and elementwise arithmetic, and runs unchanged on
CPU, GPU or TPU through XLA.
"""

import logging

from pqp_jax.config import PQPConfig
from pqp_jax.dual import (
    DualSolution,
    inequality_qp_dual,
    recover_primal,
    solve_inequality_qp,
)
from pqp_jax.exceptions import (
    DegenerateDiagonalError,
    DimensionMismatchError,
    MissingArgumentError,
    PQPError,
)
from pqp_jax.objective import QPData, kkt_residual, pqp_objective, quadratic_objective
from pqp_jax.solver import (
    PQP,
    PQPMinimiserState,
    PQPSolution,
    PQPState,
    initial_guess,
    solve,
)
from pqp_jax.split import (
    Split,
    abs_value_split,
    build_split,
    diagonal_dominance_split,
    simple_split,
)
from pqp_jax.types import SolverResult, SplitPolicy, UpdateSchedule
from pqp_jax.update import gauss_seidel_update, synchronous_update

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Main solver
    "solve",
    "PQP",
    "PQPConfig",
    "PQPSolution",
    "PQPState",
    "PQPMinimiserState",
    "SolverResult",
    "initial_guess",
    # Types
    "QPData",
    "SplitPolicy",
    "UpdateSchedule",
    # Split construction
    "Split",
    "build_split",
    "simple_split",
    "diagonal_dominance_split",
    "abs_value_split",
    # Iteration
    "synchronous_update",
    "gauss_seidel_update",
    # Objective and optimality
    "quadratic_objective",
    "kkt_residual",
    "pqp_objective",
    # KKT dual front end
    "DualSolution",
    "inequality_qp_dual",
    "recover_primal",
    "solve_inequality_qp",
    # Errors
    "PQPError",
    "MissingArgumentError",
    "DimensionMismatchError",
    "DegenerateDiagonalError",
]
