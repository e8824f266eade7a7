"""Log-weight utilities shared by the theta-level and x-level samplers.

All functions operate on unnormalized log-weights. The effective sample
size is computed entirely in log-space:

    d = w - max(w)
    ESS = exp(2 * logsumexp(d) - logsumexp(2 * d))

which equals ``1 / sum(normalized_weight ** 2)``. Shifting by the maximum
first keeps both sums in ``[1, n]``, so large log-weights (accumulated
log-likelihoods) do not cancel catastrophically.
"""

from __future__ import annotations

import jax.numpy as jnp
import jax.scipy.special
from beartype import beartype
from jaxtyping import Array, Float, jaxtyped

__all__ = [
    "normalize_log_weights",
    "log_mean_exp",
    "logsumexp_reduce",
    "compute_ess",
    "ess_reduce",
]


@jaxtyped(typechecker=beartype)
def normalize_log_weights(
    log_weights: Float[Array, " n_particles"],
) -> Float[Array, " n_particles"]:
    """Shift log-weights so that their exponentials sum to one."""
    return log_weights - jax.scipy.special.logsumexp(log_weights)


@jaxtyped(typechecker=beartype)
def log_mean_exp(log_values: Float[Array, " n"]) -> Float[Array, ""]:
    """Compute ``log(mean(exp(log_values)))`` stably."""
    n = log_values.shape[0]
    return jax.scipy.special.logsumexp(log_values) - jnp.log(n)


@jaxtyped(typechecker=beartype)
def logsumexp_reduce(log_weights: Float[Array, " n_particles"]) -> Float[Array, ""]:
    """Pooled log-weight ``log(sum(exp(log_weights)))``.

    Returns ``-inf`` for an empty or all ``-inf`` vector.
    """
    if log_weights.shape[0] == 0:
        return jnp.array(-jnp.inf)
    return jax.scipy.special.logsumexp(log_weights)


@jaxtyped(typechecker=beartype)
def compute_ess(log_weights: Float[Array, " n_particles"]) -> Float[Array, ""]:
    """Effective sample size of a set of log-weights.

    Parameters
    ----------
    log_weights : Array
        Log-weights (not necessarily normalized).

    Returns
    -------
    ess : Array
        Value in ``[1, n_particles]`` for any vector with at least one
        finite weight. A vector whose weights are all ``-inf``, or which
        contains NaN or ``+inf``, has no usable mass and gives ``0``.
    """
    usable = jnp.any(jnp.isfinite(log_weights)) & ~jnp.any(
        jnp.isnan(log_weights) | (log_weights == jnp.inf)
    )
    safe = jnp.where(usable, log_weights, 0.0)
    shifted = safe - jnp.max(safe)
    ess = jnp.exp(
        2.0 * jax.scipy.special.logsumexp(shifted)
        - jax.scipy.special.logsumexp(2.0 * shifted)
    )
    # rounding can push a uniform vector a hair outside [1, n]
    ess = jnp.clip(ess, 1.0, log_weights.shape[0])
    return jnp.where(usable, ess, 0.0)


def ess_reduce(log_weights: Float[Array, " n_particles"]) -> tuple[float, float]:
    """Return ``(ess, pooled_log_weight)`` for a log-weight vector."""
    return float(compute_ess(log_weights)), float(logsumexp_reduce(log_weights))
