"""Minimal probability distributions used by models and proposals."""

from __future__ import annotations

import chex
import jax
import jax.numpy as jnp
import jax.scipy.linalg
from jaxtyping import Array, Float, PRNGKeyArray

__all__ = [
    "Normal",
    "MultivariateNormal",
]

_LOG_2PI = jnp.log(2.0 * jnp.pi)


@chex.dataclass(frozen=True)
class Normal:
    """Elementwise normal distribution.

    ``loc`` and ``scale`` broadcast against each other; ``log_prob`` is
    elementwise, so callers sum over components themselves.
    """

    loc: Float[Array, "..."] | float
    scale: Float[Array, "..."] | float

    def sample(self, key: PRNGKeyArray, shape: tuple[int, ...] = ()) -> Array:
        batch = jnp.broadcast_shapes(jnp.shape(self.loc), jnp.shape(self.scale))
        z = jax.random.normal(key, shape=shape + batch)
        return self.loc + self.scale * z

    def log_prob(self, x: Array) -> Array:
        z = (x - self.loc) / self.scale
        return -0.5 * z**2 - jnp.log(self.scale) - 0.5 * _LOG_2PI


@chex.dataclass(frozen=True)
class MultivariateNormal:
    """Multivariate normal parameterized by mean and covariance.

    The Cholesky factor is computed on demand. A covariance that is not
    positive definite yields a NaN factor, so both ``sample`` and
    ``log_prob`` return NaN rather than raising; callers test the result.
    """

    loc: Float[Array, " dim"]
    covariance_matrix: Float[Array, "dim dim"]

    @property
    def scale_tril(self) -> Float[Array, "dim dim"]:
        return jnp.linalg.cholesky(self.covariance_matrix)

    @property
    def is_valid(self) -> bool:
        return bool(jnp.all(jnp.isfinite(self.scale_tril)))

    def sample(self, key: PRNGKeyArray) -> Float[Array, " dim"]:
        z = jax.random.normal(key, shape=self.loc.shape)
        return self.loc + self.scale_tril @ z

    def log_prob(self, x: Float[Array, " dim"]) -> Float[Array, ""]:
        L = self.scale_tril
        dim = self.loc.shape[0]
        solved = jax.scipy.linalg.solve_triangular(L, x - self.loc, lower=True)
        log_det = jnp.sum(jnp.log(jnp.diag(L)))
        return -0.5 * jnp.sum(solved**2) - log_det - 0.5 * dim * _LOG_2PI
