"""Tests for ESS-triggered theta resampling."""

import math

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from smc2.core.schedule import ScheduleElement
from smc2.core.weights import compute_ess
from smc2.distributed.comm import ThreadCommunicator
from smc2.samplers.factory import build_population
from smc2.samplers.resampler import ESSResampler

NOW = ScheduleElement(time=0.0, is_observed=True, index_output=0, index_obs=0)


def log_weights_with_ess(target):
    """Log-weights of 4 particles, one heavy and three equal, with the given ESS."""
    # w = (1 - 3y, y, y, y) with 1 / sum(w^2) = target
    a, b, c = 12.0, -6.0, 1.0 - 1.0 / target
    y = (-b + math.sqrt(b * b - 4 * a * c)) / (2 * a)
    if target < 2.0:
        y = (-b - math.sqrt(b * b - 4 * a * c)) / (2 * a)
    return jnp.log(jnp.array([1.0 - 3.0 * y, y, y, y]))


def population(flt, n_theta, comm=None):
    """A population whose rows hold theta = (g, g) for global index g."""
    s = build_population(flt, n_theta, comm=comm)
    rows = jnp.arange(s.offset, s.offset + s.size(), dtype=jnp.float32)
    s.particles = s.particles.replace(theta=jnp.tile(rows[:, None], (1, 2)))
    flt.output0(s.particles, s.outs)
    return s


class TestESSResampler:
    """Tests for the resampling decision and its effect."""

    @pytest.mark.parametrize("target", [1.5, 3.8])
    def test_weights_have_requested_ess(self, target):
        """The helper produces the ESS it is asked for."""
        np.testing.assert_allclose(compute_ess(log_weights_with_ess(target)), target, rtol=1e-4)

    def test_resamples_below_threshold(self, local_level_filter):
        """With 4 particles and threshold 0.5, ESS 1.5 triggers resampling."""
        s = population(local_level_filter, 4)
        s.log_weights = log_weights_with_ess(1.5)

        resampled = ESSResampler(ess_threshold=0.5).resample(jax.random.PRNGKey(0), NOW, s)

        assert resampled
        np.testing.assert_array_equal(s.log_weights, jnp.zeros(4))

    def test_keeps_above_threshold(self, local_level_filter):
        """With 4 particles and threshold 0.5, ESS 3.8 does not resample."""
        s = population(local_level_filter, 4)
        weights = log_weights_with_ess(3.8)
        s.log_weights = weights

        resampled = ESSResampler(ess_threshold=0.5).resample(jax.random.PRNGKey(0), NOW, s)

        assert not resampled
        np.testing.assert_array_equal(s.log_weights, weights)
        np.testing.assert_array_equal(s.ancestors, jnp.arange(4))

    @pytest.mark.parametrize("method", ["systematic", "multinomial", "stratified", "residual"])
    def test_ancestors_in_range(self, local_level_filter, method):
        """Ancestors index the previous population and match the copied thetas."""
        s = population(local_level_filter, 8)
        s.log_weights = jnp.array([0.0, -5.0, 2.0, -1.0, 0.0, 3.0, -jnp.inf, 1.0])

        ESSResampler(ess_threshold=1.0, method=method).resample(
            jax.random.PRNGKey(1), NOW, s
        )

        assert jnp.all((s.ancestors >= 0) & (s.ancestors < 8))
        assert not jnp.any(s.ancestors == 6)
        expected = jnp.tile(s.ancestors.astype(jnp.float32)[:, None], (1, 2))
        np.testing.assert_array_equal(s.particles.theta, expected)

    def test_buffers_follow_particles(self, local_level_filter):
        """Output buffers are copied along with their theta-particles."""
        s = population(local_level_filter, 4)
        s.log_weights = jnp.array([0.0, -jnp.inf, -jnp.inf, -jnp.inf])

        ESSResampler().resample(jax.random.PRNGKey(2), NOW, s)

        np.testing.assert_array_equal(s.ancestors, jnp.zeros(4))
        np.testing.assert_array_equal(s.outs.theta, s.particles.theta)
        assert len(s.outs) == 0

    def test_sharded_population(self, local_level_filter, run_ranks):
        """Ranks agree on the decision and on global ancestors."""
        comms = ThreadCommunicator.create_group(2)
        weights = jnp.array([4.0, 0.0, 0.0, 0.0, 0.0, 0.0])

        def fn(comm):
            s = population(local_level_filter, 6, comm=comm)
            s.log_weights = weights[s.offset : s.offset + s.size()]
            resampled = ESSResampler(comm=comm).resample(jax.random.PRNGKey(3), NOW, s)
            return resampled, s.ancestors, [float(t) for t in s.particles.theta[:, 0]]

        (r0, a0, t0), (r1, a1, t1) = run_ranks(comms, fn)

        assert r0 and r1
        ancestors = jnp.concatenate([a0, a1])
        assert ancestors.shape == (6,)
        assert jnp.sum(ancestors == 0) >= 4
        assert t0 + t1 == [float(a) for a in ancestors]
