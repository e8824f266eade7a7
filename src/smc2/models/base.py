"""State-space model interface.

A model couples a static parameter vector ``theta`` (the quantity SMC^2
samples) with a latent Markov process ``x`` and an observation density.
Every method takes ``theta`` as a flat unconstrained vector; models map it
to their natural parameterization internally.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import jax.numpy as jnp
from jaxtyping import Array, Float, PRNGKeyArray

from smc2.models.distributions import Normal

__all__ = ["StateSpaceModel"]


class StateSpaceModel(ABC):
    """Abstract state-space model with a prior over ``theta``."""

    @property
    @abstractmethod
    def theta_dim(self) -> int: ...

    @property
    @abstractmethod
    def state_dim(self) -> int: ...

    @property
    @abstractmethod
    def obs_dim(self) -> int: ...

    @abstractmethod
    def prior(self) -> Normal:
        """Prior over the unconstrained parameter vector."""

    @abstractmethod
    def initial_distribution(self, theta: Float[Array, " theta_dim"]) -> Normal: ...

    @abstractmethod
    def transition_distribution(
        self,
        theta: Float[Array, " theta_dim"],
        x: Float[Array, " state_dim"],
        dt: float = 1.0,
    ) -> Normal: ...

    @abstractmethod
    def emission_distribution(
        self,
        theta: Float[Array, " theta_dim"],
        x: Float[Array, " state_dim"],
    ) -> Normal: ...

    def log_prior(self, theta: Float[Array, " theta_dim"]) -> Float[Array, ""]:
        """Joint log prior density of ``theta``."""
        return jnp.sum(self.prior().log_prob(theta))

    def sample_prior(self, key: PRNGKeyArray) -> Float[Array, " theta_dim"]:
        prior = self.prior()
        return jnp.broadcast_to(prior.sample(key), (self.theta_dim,))
