"""Tests for proposal adaptation."""

import jax.numpy as jnp
import numpy as np

from smc2.samplers.adapter import GaussianAdapter, weighted_moments
from smc2.samplers.factory import build_population


def population(flt, thetas, log_weights):
    s = build_population(flt, len(thetas))
    s.particles = s.particles.replace(theta=jnp.asarray(thetas, dtype=jnp.float32))
    s.log_weights = jnp.asarray(log_weights, dtype=jnp.float32)
    return s


class TestWeightedMoments:
    """Tests for weighted mean and covariance."""

    def test_uniform_weights(self):
        """Uniform weights give the plain mean and (biased) covariance."""
        thetas = jnp.array([[0.0, 0.0], [2.0, 0.0], [0.0, 2.0], [2.0, 2.0]])

        mean, cov = weighted_moments(thetas, jnp.zeros(4))

        np.testing.assert_allclose(mean, jnp.array([1.0, 1.0]), rtol=1e-5)
        np.testing.assert_allclose(cov, jnp.eye(2), rtol=1e-5, atol=1e-6)

    def test_ignores_zero_weights(self):
        """Particles with zero weight do not move the mean."""
        thetas = jnp.array([[1.0], [100.0]])

        mean, _ = weighted_moments(thetas, jnp.array([0.0, -jnp.inf]))

        np.testing.assert_allclose(mean, jnp.array([1.0]))


class TestGaussianAdapter:
    """Tests for readiness and adaptation."""

    def test_not_ready_when_empty(self):
        """Nothing accumulated means not ready."""
        assert not GaussianAdapter().ready()

    def test_ready_with_spread_population(self, local_level_filter):
        """A well spread population is enough to adapt."""
        thetas = [[float(i), float(i % 3)] for i in range(8)]
        s = population(local_level_filter, thetas, [0.0] * 8)
        adapter = GaussianAdapter(scale=2.0)

        adapter.add(s)

        assert adapter.ready()
        adapter.adapt()
        mean, cov = weighted_moments(s.theta_matrix(), s.log_weights)
        np.testing.assert_allclose(adapter.proposal.loc, mean, rtol=1e-5)
        np.testing.assert_allclose(adapter.proposal.covariance_matrix, 2.0 * cov, rtol=1e-5)

    def test_not_ready_when_degenerate(self, local_level_filter):
        """Weight on a single particle is not enough to adapt."""
        thetas = [[float(i), 0.0] for i in range(8)]
        s = population(local_level_filter, thetas, [0.0] + [-jnp.inf] * 7)
        adapter = GaussianAdapter()

        adapter.add(s)

        assert not adapter.ready()

    def test_min_ess(self, local_level_filter):
        """A minimum ESS above the population's ESS blocks adaptation."""
        thetas = [[float(i), float(i % 3)] for i in range(8)]
        s = population(local_level_filter, thetas, [0.0] * 8)
        adapter = GaussianAdapter(min_ess=10.0)

        adapter.add(s)

        assert not adapter.ready()

    def test_clear_keeps_proposal(self, local_level_filter):
        """Clearing statistics keeps the committed proposal."""
        thetas = [[float(i), float(i % 3)] for i in range(8)]
        s = population(local_level_filter, thetas, [0.0] * 8)
        adapter = GaussianAdapter()
        adapter.add(s)
        adapter.adapt()

        adapter.clear()

        assert not adapter.ready()
        assert adapter.proposal is not None
