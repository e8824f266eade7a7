"""Tests for the lane log-density reduction."""

import jax.numpy as jnp
import numpy as np

from smc2.core.reduce import lane_log_densities, max_log_density, sum_log_density
from smc2.models.distributions import Normal


class TestSumLogDensity:
    """Tests for per-particle folding of lane contributions."""

    def test_matches_row_sums(self):
        """With every particle active, totals are row sums."""
        lanes = jnp.arange(12.0).reshape(4, 3)

        totals = sum_log_density(lanes, 4)

        np.testing.assert_allclose(totals, jnp.sum(lanes, axis=1))

    def test_inactive_particles_stay_zero(self):
        """Particles beyond n_active contribute nothing."""
        lanes = jnp.ones((5, 2))

        totals = sum_log_density(lanes, 3)

        np.testing.assert_allclose(totals, jnp.array([2.0, 2.0, 2.0, 0.0, 0.0]))

    def test_single_element(self):
        """One element per particle is a single round."""
        lanes = jnp.array([[1.0], [-2.0]])

        np.testing.assert_allclose(sum_log_density(lanes, 2), jnp.array([1.0, -2.0]))


class TestMaxLogDensity:
    """Tests for the maximum over particles."""

    def test_max_over_active(self):
        """The maximum ignores inactive particles."""
        lanes = jnp.array([[0.0, -1.0], [-3.0, -3.0], [10.0, 10.0]])

        np.testing.assert_allclose(max_log_density(lanes, 2), -1.0)

    def test_all_impossible(self):
        """Zero density everywhere gives -inf."""
        lanes = jnp.full((3, 2), -jnp.inf)

        assert max_log_density(lanes, 3) == -jnp.inf


class TestLaneLogDensities:
    """Tests for lane evaluation."""

    def test_lane_grid(self):
        """One lane per (particle, observation component)."""
        particles = jnp.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0]])
        y = jnp.array([1.0, 1.0])

        def log_density(x, yi):
            return Normal(loc=x, scale=1.0).log_prob(yi)

        lanes = lane_log_densities(log_density, particles, y)

        assert lanes.shape == (3, 2)
        assert jnp.argmax(sum_log_density(lanes, 3)) == 1
