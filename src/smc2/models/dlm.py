"""Dynamic linear models."""

from __future__ import annotations

import chex
import jax.numpy as jnp
from jaxtyping import Array, Float

from smc2.models.base import StateSpaceModel
from smc2.models.distributions import Normal

__all__ = [
    "LocalLevelParams",
    "LocalLevelModel",
]


@chex.dataclass(frozen=True)
class LocalLevelParams:
    """Natural parameters of the local level model.

    Attributes
    ----------
    sigma_obs : float
        Observation noise standard deviation.
    sigma_level : float
        Level innovation standard deviation per unit time.
    """

    sigma_obs: Float[Array, ""]
    sigma_level: Float[Array, ""]


class LocalLevelModel(StateSpaceModel):
    """Random walk observed with noise.

        x_0 ~ N(m0, C0)
        x_t ~ N(x_{t-dt}, sigma_level^2 * dt)
        y_t ~ N(x_t, sigma_obs^2)

    ``theta = (log sigma_obs, log sigma_level)`` with independent normal
    priors on both log scales.
    """

    def __init__(
        self,
        m0: float = 0.0,
        C0: float = 1.0,
        prior_loc: tuple[float, float] = (-1.0, -1.0),
        prior_scale: tuple[float, float] = (1.0, 1.0),
    ):
        self.m0 = m0
        self.C0 = C0
        self.prior_loc = jnp.asarray(prior_loc, dtype=jnp.float32)
        self.prior_scale = jnp.asarray(prior_scale, dtype=jnp.float32)

    @property
    def theta_dim(self) -> int:
        return 2

    @property
    def state_dim(self) -> int:
        return 1

    @property
    def obs_dim(self) -> int:
        return 1

    def params_from_theta(self, theta: Float[Array, " 2"]) -> LocalLevelParams:
        return LocalLevelParams(sigma_obs=jnp.exp(theta[0]), sigma_level=jnp.exp(theta[1]))

    def prior(self) -> Normal:
        return Normal(loc=self.prior_loc, scale=self.prior_scale)

    def initial_distribution(self, theta):
        return Normal(loc=jnp.full((1,), self.m0), scale=jnp.full((1,), jnp.sqrt(self.C0)))

    def transition_distribution(self, theta, x, dt=1.0):
        params = self.params_from_theta(theta)
        return Normal(loc=x, scale=params.sigma_level * jnp.sqrt(dt) * jnp.ones_like(x))

    def emission_distribution(self, theta, x):
        params = self.params_from_theta(theta)
        return Normal(loc=x, scale=params.sigma_obs * jnp.ones_like(x))
