"""Stochastic volatility model."""

from __future__ import annotations

import chex
import jax.numpy as jnp
from jaxtyping import Array, Float

from smc2.models.base import StateSpaceModel
from smc2.models.distributions import Normal

__all__ = [
    "SVParams",
    "SVModel",
]


@chex.dataclass(frozen=True)
class SVParams:
    """Natural parameters of the stochastic volatility model.

    Attributes
    ----------
    mu : float
        Mean log-volatility.
    phi : float
        Persistence, in (-1, 1).
    sigma_eta : float
        Log-volatility innovation standard deviation.
    """

    mu: Float[Array, ""]
    phi: Float[Array, ""]
    sigma_eta: Float[Array, ""]


class SVModel(StateSpaceModel):
    """Univariate stochastic volatility.

        h_0 ~ N(mu, sigma_eta^2 / (1 - phi^2))
        h_t ~ N(mu + phi^dt (h_{t-dt} - mu), sigma_eta^2 * dt)
        y_t ~ N(0, exp(h_t))

    ``theta = (mu, atanh phi, log sigma_eta)``.
    """

    def __init__(
        self,
        prior_loc: tuple[float, float, float] = (0.0, 2.0, -1.5),
        prior_scale: tuple[float, float, float] = (1.0, 0.5, 0.5),
    ):
        self.prior_loc = jnp.asarray(prior_loc, dtype=jnp.float32)
        self.prior_scale = jnp.asarray(prior_scale, dtype=jnp.float32)

    @property
    def theta_dim(self) -> int:
        return 3

    @property
    def state_dim(self) -> int:
        return 1

    @property
    def obs_dim(self) -> int:
        return 1

    def params_from_theta(self, theta: Float[Array, " 3"]) -> SVParams:
        return SVParams(mu=theta[0], phi=jnp.tanh(theta[1]), sigma_eta=jnp.exp(theta[2]))

    def prior(self) -> Normal:
        return Normal(loc=self.prior_loc, scale=self.prior_scale)

    def initial_distribution(self, theta):
        p = self.params_from_theta(theta)
        stationary_sd = p.sigma_eta / jnp.sqrt(1.0 - p.phi**2)
        return Normal(loc=jnp.full((1,), p.mu), scale=jnp.full((1,), stationary_sd))

    def transition_distribution(self, theta, x, dt=1.0):
        p = self.params_from_theta(theta)
        loc = p.mu + p.phi**dt * (x - p.mu)
        return Normal(loc=loc, scale=p.sigma_eta * jnp.sqrt(dt) * jnp.ones_like(x))

    def emission_distribution(self, theta, x):
        return Normal(loc=jnp.zeros_like(x), scale=jnp.exp(x / 2.0))
