"""Tests for state space models."""

import jax
import jax.numpy as jnp
import numpy as np

from smc2.models.distributions import MultivariateNormal, Normal
from smc2.models.dlm import LocalLevelModel, LocalLevelParams
from smc2.models.sv import SVModel


class TestNormalDistribution:
    """Tests for Normal distribution."""

    def test_sample_shape(self):
        """Sample should follow loc's shape, prefixed by the sample shape."""
        key = jax.random.PRNGKey(42)
        dist = Normal(loc=jnp.zeros(3), scale=1.0)

        assert dist.sample(key).shape == (3,)
        assert dist.sample(key, (5,)).shape == (5, 3)

    def test_log_prob_standard_normal(self):
        """Log prob at mean should be -0.5*log(2*pi)."""
        dist = Normal(loc=0.0, scale=1.0)

        log_p = dist.log_prob(jnp.array(0.0))

        np.testing.assert_allclose(log_p, -0.5 * jnp.log(2 * jnp.pi), rtol=1e-5)


class TestMultivariateNormal:
    """Tests for MultivariateNormal distribution."""

    def test_sample_shape(self):
        """Sample should have correct dimension."""
        key = jax.random.PRNGKey(42)
        dist = MultivariateNormal(loc=jnp.zeros(3), covariance_matrix=jnp.eye(3))

        assert dist.sample(key).shape == (3,)

    def test_log_prob_matches_independent_normals(self):
        """With identity covariance, log prob is a sum of standard normals."""
        x = jnp.array([0.3, -1.2])
        dist = MultivariateNormal(loc=jnp.zeros(2), covariance_matrix=jnp.eye(2))

        expected = jnp.sum(Normal(loc=0.0, scale=1.0).log_prob(x))

        np.testing.assert_allclose(dist.log_prob(x), expected, rtol=1e-5)

    def test_invalid_covariance(self):
        """A covariance that is not positive definite is flagged, not raised."""
        dist = MultivariateNormal(
            loc=jnp.zeros(2), covariance_matrix=jnp.array([[1.0, 2.0], [2.0, 1.0]])
        )

        assert not dist.is_valid
        assert not jnp.all(jnp.isfinite(dist.sample(jax.random.PRNGKey(0))))


class TestLocalLevelModel:
    """Tests for Local Level Model."""

    def test_dimensions(self):
        """Local level has 2 parameters, 1 state and 1 observation."""
        model = LocalLevelModel()

        assert model.theta_dim == 2
        assert model.state_dim == 1
        assert model.obs_dim == 1

    def test_params_from_theta(self):
        """Theta holds log standard deviations."""
        model = LocalLevelModel()

        params = model.params_from_theta(jnp.log(jnp.array([0.5, 0.1])))

        assert isinstance(params, LocalLevelParams)
        np.testing.assert_allclose(params.sigma_obs, 0.5, rtol=1e-5)
        np.testing.assert_allclose(params.sigma_level, 0.1, rtol=1e-5)

    def test_transition_centered_on_state(self):
        """Transition should be centered at current state and scale with dt."""
        model = LocalLevelModel()
        theta = jnp.log(jnp.array([0.5, 0.1]))
        x = jnp.array([5.0])

        dist = model.transition_distribution(theta, x, dt=4.0)

        np.testing.assert_allclose(dist.loc, x)
        np.testing.assert_allclose(dist.scale, jnp.array([0.2]), rtol=1e-5)

    def test_prior(self):
        """Prior samples should be finite with finite density."""
        model = LocalLevelModel()
        theta = model.sample_prior(jax.random.PRNGKey(0))

        assert theta.shape == (2,)
        assert jnp.isfinite(model.log_prior(theta))


class TestSVModel:
    """Tests for Stochastic Volatility Model."""

    def test_dimensions(self):
        """SV has 3 parameters and a scalar log-volatility."""
        model = SVModel()

        assert model.theta_dim == 3
        assert model.state_dim == 1

    def test_emission_scale_depends_on_state(self):
        """Emission scale should depend on exp(h/2)."""
        model = SVModel()
        theta = jnp.array([0.0, 2.0, -1.0])

        dist_low = model.emission_distribution(theta, jnp.array([-2.0]))
        dist_high = model.emission_distribution(theta, jnp.array([2.0]))

        assert dist_low.scale[0] < dist_high.scale[0]

    def test_persistence_in_unit_interval(self):
        """phi = tanh(theta[1]) lies in (-1, 1)."""
        params = SVModel().params_from_theta(jnp.array([0.0, 5.0, 0.0]))

        assert -1.0 < params.phi < 1.0
