"""Tests for resampling algorithms."""

import jax
import jax.numpy as jnp
import pytest

from smc2.core.resampling import (
    multinomial_resample,
    resample,
    residual_resample,
    stratified_resample,
    systematic_resample,
)

SCHEMES = [systematic_resample, multinomial_resample, stratified_resample, residual_resample]


class TestIndexRange:
    """Every scheme returns N indices in [0, N)."""

    @pytest.mark.parametrize("scheme", SCHEMES)
    def test_preserves_count(self, scheme):
        """Resampling should preserve particle count."""
        key = jax.random.PRNGKey(42)
        n_particles = 100
        log_weights = jax.random.normal(key, shape=(n_particles,))

        indices = scheme(key, log_weights)

        assert len(indices) == n_particles
        assert jnp.all(indices >= 0)
        assert jnp.all(indices < n_particles)

    @pytest.mark.parametrize("scheme", SCHEMES)
    def test_never_selects_zero_weight(self, scheme):
        """Particles with zero weight should never be selected."""
        key = jax.random.PRNGKey(7)
        log_weights = jnp.array([0.0, -jnp.inf, 0.0, -jnp.inf])

        indices = scheme(key, log_weights)

        assert jnp.all((indices == 0) | (indices == 2))


class TestSystematicResampling:
    """Tests for systematic resampling."""

    def test_concentrates_on_high_weight(self):
        """High weight particles should be selected more often."""
        key = jax.random.PRNGKey(42)
        n_particles = 1000
        log_weights = jnp.zeros(n_particles).at[0].set(10.0)

        indices = systematic_resample(key, log_weights)

        assert jnp.sum(indices == 0) > n_particles * 0.9

    def test_uniform_weights_spread(self):
        """With uniform weights, every particle is selected exactly once."""
        key = jax.random.PRNGKey(42)
        n_particles = 100

        indices = systematic_resample(key, jnp.zeros(n_particles))

        counts = jnp.bincount(indices, length=n_particles)
        assert jnp.all(counts <= 2)


class TestResidualResampling:
    """Tests for residual resampling."""

    def test_deterministic_copies(self):
        """floor(N * w_i) copies of each particle should always appear."""
        key = jax.random.PRNGKey(3)
        weights = jnp.array([0.6, 0.3, 0.05, 0.05])

        indices = residual_resample(key, jnp.log(weights))

        counts = jnp.bincount(indices, length=4)
        assert counts[0] >= 2
        assert counts[1] >= 1


class TestResampleDispatch:
    """Tests for the resample dispatch function."""

    @pytest.mark.parametrize(
        "method",
        ["systematic", "multinomial", "stratified", "residual"],
    )
    def test_all_methods(self, method):
        """All resampling methods should work."""
        key = jax.random.PRNGKey(42)
        log_weights = jax.random.normal(key, shape=(100,))

        indices = resample(key, log_weights, method)

        assert len(indices) == 100

    def test_unknown_method(self):
        """Unknown schemes should be rejected."""
        with pytest.raises(ValueError):
            resample(jax.random.PRNGKey(0), jnp.zeros(4), "killing")
