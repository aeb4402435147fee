"""Unit tests for the construction of the non-negative split.

Every policy must decompose Q = Qp - Qn and h = hp - hn into elementwise
non-negative parts; the policies differ in where the fill goes.
"""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from pqp_jax import (
    SplitPolicy,
    abs_value_split,
    build_split,
    diagonal_dominance_split,
    simple_split,
)

# Enable 64-bit precision for numerical accuracy
jax.config.update("jax_enable_x64", True)

EPS = 1e-6


def _random_problem(n, seed):
    rng = np.random.default_rng(seed)
    B = rng.normal(size=(n, n))
    return jnp.asarray(B @ B.T), jnp.asarray(rng.normal(size=n))


# A small indefinite-sign example used for exact checks
Q_MIXED = jnp.array([[2.0, -1.0], [-1.0, 3.0]])
H_MIXED = jnp.array([1.0, -2.0])


class TestSplitInvariants:
    """Properties shared by every split policy."""

    @pytest.mark.parametrize("policy", list(SplitPolicy))
    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_split_reconstructs_problem(self, policy, seed):
        """Qp - Qn == Q and hp - hn == h."""
        Q, h = _random_problem(6, seed)
        split = build_split(Q, h, policy, EPS)

        np.testing.assert_allclose(split.Qp - split.Qn, Q, atol=1e-12)
        np.testing.assert_allclose(split.hp - split.hn, h, atol=1e-12)

    @pytest.mark.parametrize("policy", list(SplitPolicy))
    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_all_parts_non_negative(self, policy, seed):
        Q, h = _random_problem(6, seed)
        split = build_split(Q, h, policy, EPS)

        assert jnp.all(split.Qp >= 0)
        assert jnp.all(split.Qn >= 0)
        assert jnp.all(split.hp >= 0)
        assert jnp.all(split.hn >= 0)

    @pytest.mark.parametrize("policy", list(SplitPolicy))
    def test_denominator_positive_for_positive_x(self, policy):
        """Regularization keeps Qp x + hn > 0 even for h >= 0 and tiny x."""
        Q = jnp.array([[1.0, 0.0], [0.0, 1.0]])
        h = jnp.array([1.0, 1.0])
        split = build_split(Q, h, policy, EPS)

        x = jnp.full(2, EPS)
        assert jnp.all(split.Qp @ x + split.hn > 0)

    def test_string_policy(self):
        split = build_split(Q_MIXED, H_MIXED, "abs_value", EPS)
        expected = abs_value_split(Q_MIXED, H_MIXED, EPS)
        np.testing.assert_array_equal(split.Qp, expected.Qp)

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            build_split(Q_MIXED, H_MIXED, "cholesky", EPS)


class TestSimpleSplit:
    """Tests for the default elementwise positive/negative split."""

    def test_exact_parts(self):
        """Q = [[2, -1], [-1, 3]], h = [1, -2].

        Qp = max(Q, 0) + eps I, Qn = Qp - Q, hp = max(h, 0) (1 + eps).
        """
        split = simple_split(Q_MIXED, H_MIXED, EPS)

        np.testing.assert_allclose(split.Qp, [[2.0 + EPS, 0.0], [0.0, 3.0 + EPS]])
        np.testing.assert_allclose(split.Qn, [[EPS, 1.0], [1.0, EPS]], atol=1e-15)
        np.testing.assert_allclose(split.hp, [1.0 + EPS, 0.0])
        np.testing.assert_allclose(split.hn, [EPS, 2.0], atol=1e-15)

    def test_keeps_sparsity_pattern(self):
        """Off-diagonal zeros of Q stay zero in Qp and Qn."""
        Q = jnp.array([[4.0, 0.0, -1.0], [0.0, 4.0, 1.0], [-1.0, 1.0, 4.0]])
        h = jnp.ones(3)
        split = simple_split(Q, h, EPS)

        assert split.Qp[0, 1] == 0.0 and split.Qn[0, 1] == 0.0
        assert split.Qp[1, 0] == 0.0 and split.Qn[1, 0] == 0.0


class TestDiagonalDominanceSplit:
    """Tests for the split with diagonally dominant Qp."""

    def test_exact_parts(self):
        """Each Qp[i, i] grows by the row sum of max(-Q, 0)."""
        split = diagonal_dominance_split(Q_MIXED, H_MIXED, EPS)

        np.testing.assert_allclose(
            split.Qp, [[3.0 + EPS, 0.0], [0.0, 4.0 + EPS]], atol=1e-15
        )
        np.testing.assert_allclose(
            split.Qn, [[1.0 + EPS, 1.0], [1.0, 1.0 + EPS]], atol=1e-15
        )

    def test_qn_diagonally_dominant(self):
        Q, h = _random_problem(8, 3)
        split = diagonal_dominance_split(Q, h, EPS)

        Qn = np.asarray(split.Qn)
        off_diagonal = Qn.sum(axis=1) - np.diag(Qn)
        assert np.all(np.diag(Qn) >= off_diagonal - 1e-12)


class TestAbsValueSplit:
    """Tests for the split with Qp = |Q|."""

    def test_exact_parts(self):
        split = abs_value_split(Q_MIXED, H_MIXED, EPS)

        np.testing.assert_allclose(split.Qp, [[2.0 + EPS, 1.0], [1.0, 3.0 + EPS]])
        np.testing.assert_allclose(split.Qn, [[EPS, 2.0], [2.0, EPS]], atol=1e-15)

    def test_non_negative_q_gives_trivial_negative_part(self):
        """For Q >= 0 elementwise, Qn reduces to eps I."""
        Q = jnp.array([[2.0, 1.0], [1.0, 2.0]])
        split = abs_value_split(Q, jnp.ones(2), EPS)

        np.testing.assert_allclose(split.Qn, EPS * jnp.eye(2), atol=1e-15)


class TestSplitJIT:
    """The split functions are pure and traceable."""

    def test_jit_compilation(self):
        Q, h = _random_problem(4, 0)

        @jax.jit
        def split_jit(Q, h):
            return build_split(Q, h, SplitPolicy.DIAGONAL_DOMINANCE, EPS)

        jitted = split_jit(Q, h)
        eager = diagonal_dominance_split(Q, h, EPS)
        np.testing.assert_allclose(jitted.Qp, eager.Qp)
        np.testing.assert_allclose(jitted.hn, eager.hn)
