"""Tests for inequality-constrained QPs solved through the PQP dual."""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from pqp_jax import (
    DimensionMismatchError,
    MissingArgumentError,
    SolverResult,
    inequality_qp_dual,
    recover_primal,
    solve_inequality_qp,
)

# Enable 64-bit precision for numerical accuracy
jax.config.update("jax_enable_x64", True)


# minimize (z0 - 2)^2 + 2 (z1 - 2)^2
# subject to z0 <= 0.5, z1 <= 3, z0 + z1 <= 2
# Solution z = (0.5, 1.5) with multipliers (1, 0, 2).
H_BOX = jnp.array([[2.0, 0.0], [0.0, 4.0]])
F_BOX = jnp.array([-4.0, -8.0])
A_BOX = jnp.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
B_BOX = jnp.array([0.5, 3.0, 2.0])


class TestDualConstruction:
    """Tests for the dual problem data."""

    def test_single_constraint(self):
        """min (1/2)|z|^2 s.t. z0 + z1 >= 2 has dual Q = [[2]], h = [2]."""
        Q, h = inequality_qp_dual(
            jnp.eye(2), jnp.zeros(2), jnp.array([[-1.0, -1.0]]), jnp.array([-2.0])
        )

        np.testing.assert_allclose(Q, [[2.0]])
        np.testing.assert_allclose(h, [2.0])

    def test_three_constraints(self):
        Q, h = inequality_qp_dual(H_BOX, F_BOX, A_BOX, B_BOX)

        np.testing.assert_allclose(
            Q,
            [[0.5, 0.0, 0.5], [0.0, 0.25, 0.25], [0.5, 0.25, 0.75]],
            atol=1e-14,
        )
        np.testing.assert_allclose(h, [1.5, -1.0, 2.0], atol=1e-14)

    def test_dual_matrix_symmetric(self):
        rng = np.random.default_rng(0)
        B = rng.normal(size=(4, 4))
        H = jnp.asarray(B @ B.T + 4 * np.eye(4))
        A = jnp.asarray(rng.normal(size=(6, 4)))

        Q, _ = inequality_qp_dual(H, jnp.ones(4), A, jnp.ones(6))

        np.testing.assert_array_equal(Q, Q.T)

    def test_recover_primal_zero_multipliers(self):
        """With lam = 0 the primal point is the unconstrained minimizer."""
        z = recover_primal(H_BOX, F_BOX, A_BOX, jnp.zeros(3))
        np.testing.assert_allclose(z, [2.0, 2.0])


class TestSolveInequalityQP:
    """End-to-end solves through the dual."""

    def test_active_constraint(self):
        sol = solve_inequality_qp(
            jnp.eye(2), jnp.zeros(2), jnp.array([[-1.0, -1.0]]), jnp.array([-2.0])
        )

        np.testing.assert_allclose(sol.z, [1.0, 1.0], atol=1e-5)
        np.testing.assert_allclose(sol.lam, [1.0], atol=1e-5)
        assert sol.dual.result == SolverResult.CONVERGED

    def test_inactive_constraint(self):
        """min (1/2)|z|^2 - z0 - z1 s.t. z0 + z1 <= 5: the bound is slack."""
        sol = solve_inequality_qp(
            jnp.eye(2),
            jnp.array([-1.0, -1.0]),
            jnp.array([[1.0, 1.0]]),
            jnp.array([5.0]),
        )

        np.testing.assert_allclose(sol.z, [1.0, 1.0], atol=1e-5)
        np.testing.assert_allclose(sol.lam, [0.0], atol=1e-6)

    def test_mixed_constraints(self):
        sol = solve_inequality_qp(H_BOX, F_BOX, A_BOX, B_BOX)

        np.testing.assert_allclose(sol.z, [0.5, 1.5], atol=1e-4)
        np.testing.assert_allclose(sol.lam, [1.0, 0.0, 2.0], atol=1e-4)
        assert np.all(A_BOX @ sol.z <= B_BOX + 1e-4)

    def test_solve_kwargs_forwarded(self):
        sol = solve_inequality_qp(
            H_BOX, F_BOX, A_BOX, B_BOX, max_steps=5, track_objective=True
        )

        assert sol.dual.num_steps == 5
        assert sol.dual.values.shape == (6,)


class TestDualValidation:
    """Tests for argument checking."""

    def test_missing_rhs(self):
        with pytest.raises(MissingArgumentError):
            inequality_qp_dual(H_BOX, F_BOX, A_BOX, None)

    def test_missing_matrix(self):
        with pytest.raises(MissingArgumentError):
            inequality_qp_dual(None, F_BOX, A_BOX, B_BOX)

    def test_missing_multipliers(self):
        with pytest.raises(MissingArgumentError):
            recover_primal(H_BOX, F_BOX, A_BOX, None)

    def test_constraint_columns(self):
        with pytest.raises(DimensionMismatchError):
            inequality_qp_dual(H_BOX, F_BOX, jnp.ones((3, 3)), B_BOX)

    def test_rhs_length(self):
        with pytest.raises(DimensionMismatchError):
            inequality_qp_dual(H_BOX, F_BOX, A_BOX, jnp.ones(2))

    def test_scalar_linear_term(self):
        with pytest.raises(DimensionMismatchError, match="f must be a vector"):
            inequality_qp_dual(jnp.eye(1), 0.0, jnp.ones((1, 1)), jnp.ones(1))

    def test_hessian_shape(self):
        with pytest.raises(DimensionMismatchError):
            solve_inequality_qp(jnp.eye(3), F_BOX, A_BOX, B_BOX)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
