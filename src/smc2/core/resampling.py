"""Index samplers for resampling particle populations.

Each scheme maps unnormalized log-weights to ``n_particles`` ancestor
indices in ``[0, n_particles)``:

- Systematic resampling (one uniform draw, lowest variance)
- Stratified resampling (one uniform draw per stratum)
- Multinomial resampling (independent categorical draws)
- Residual resampling (deterministic copies plus multinomial remainder)
"""

from __future__ import annotations

from typing import Literal

import jax
import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, Float, Int, PRNGKeyArray, jaxtyped

from smc2.core.weights import normalize_log_weights

__all__ = [
    "ResamplingMethod",
    "systematic_resample",
    "multinomial_resample",
    "stratified_resample",
    "residual_resample",
    "resample",
]

ResamplingMethod = Literal["systematic", "multinomial", "stratified", "residual"]


def _inverse_cdf(
    log_weights: Float[Array, " n_particles"],
    positions: Float[Array, " n_particles"],
) -> Int[Array, " n_particles"]:
    n_particles = log_weights.shape[0]
    cumsum = jnp.cumsum(jnp.exp(normalize_log_weights(log_weights)))
    # pin the last entry to exactly 1
    cumsum = cumsum / cumsum[-1]
    indices = jnp.searchsorted(cumsum, positions)
    return jnp.minimum(indices, n_particles - 1).astype(jnp.int32)


@jaxtyped(typechecker=beartype)
def systematic_resample(
    key: PRNGKeyArray,
    log_weights: Float[Array, " n_particles"],
) -> Int[Array, " n_particles"]:
    """Systematic resampling.

    A single uniform offset is shared by all ``n_particles`` evenly spaced
    positions.

    Parameters
    ----------
    key : PRNGKeyArray
        JAX random key.
    log_weights : Array
        Log-weights (not necessarily normalized).

    Returns
    -------
    indices : Array
        Resampled particle indices.
    """
    n_particles = log_weights.shape[0]
    u0 = jax.random.uniform(key)
    positions = (u0 + jnp.arange(n_particles)) / n_particles
    return _inverse_cdf(log_weights, positions)


@jaxtyped(typechecker=beartype)
def stratified_resample(
    key: PRNGKeyArray,
    log_weights: Float[Array, " n_particles"],
) -> Int[Array, " n_particles"]:
    """Stratified resampling: one independent draw inside each of N strata."""
    n_particles = log_weights.shape[0]
    u = jax.random.uniform(key, shape=(n_particles,))
    positions = (jnp.arange(n_particles) + u) / n_particles
    return _inverse_cdf(log_weights, positions)


@jaxtyped(typechecker=beartype)
def multinomial_resample(
    key: PRNGKeyArray,
    log_weights: Float[Array, " n_particles"],
) -> Int[Array, " n_particles"]:
    """Multinomial resampling from the categorical distribution of the weights."""
    n_particles = log_weights.shape[0]
    indices = jax.random.categorical(
        key, normalize_log_weights(log_weights), shape=(n_particles,)
    )
    return indices.astype(jnp.int32)


@jaxtyped(typechecker=beartype)
def residual_resample(
    key: PRNGKeyArray,
    log_weights: Float[Array, " n_particles"],
) -> Int[Array, " n_particles"]:
    """Residual resampling.

    Particle ``i`` is first copied ``floor(N * w_i)`` times; the remaining
    slots are filled by multinomial draws from the residual weights.

    Parameters
    ----------
    key : PRNGKeyArray
        JAX random key.
    log_weights : Array
        Log-weights (not necessarily normalized).

    Returns
    -------
    indices : Array
        Resampled particle indices.
    """
    n_particles = log_weights.shape[0]
    scaled = n_particles * jnp.exp(normalize_log_weights(log_weights))

    counts = jnp.floor(scaled).astype(jnp.int32)
    n_deterministic = jnp.sum(counts)
    deterministic = jnp.repeat(
        jnp.arange(n_particles), counts, total_repeat_length=n_particles
    )

    residuals = scaled - counts
    total = jnp.sum(residuals)
    safe_total = jnp.where(total > 0, total, 1.0)
    residuals = jnp.where(total > 0, residuals / safe_total, 1.0 / n_particles)
    stochastic = jax.random.choice(
        key, n_particles, shape=(n_particles,), p=residuals, replace=True
    )

    slots = jnp.arange(n_particles)
    return jnp.where(slots < n_deterministic, deterministic, stochastic).astype(jnp.int32)


def resample(
    key: PRNGKeyArray,
    log_weights: Float[Array, " n_particles"],
    method: ResamplingMethod = "systematic",
) -> Int[Array, " n_particles"]:
    """Draw ancestor indices with the named scheme.

    Parameters
    ----------
    key : PRNGKeyArray
        JAX random key.
    log_weights : Array
        Log-weights (not necessarily normalized).
    method : str
        "systematic", "multinomial", "stratified" or "residual".

    Returns
    -------
    indices : Array
        Resampled particle indices.
    """
    methods = {
        "systematic": systematic_resample,
        "multinomial": multinomial_resample,
        "stratified": stratified_resample,
        "residual": residual_resample,
    }
    if method not in methods:
        raise ValueError(f"Unknown resampling method: {method!r}")
    return methods[method](key, log_weights)
