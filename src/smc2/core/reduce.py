"""Data-parallel log-density reduction over (particle, element) lanes.

The observation density of a particle is the sum of the log-densities of
its observation components. Evaluation is laid out on a two-dimensional
grid of lanes, one per ``(particle, element)`` pair, and the per-particle
totals are folded in ``n_elements`` synchronized rounds: round ``k`` adds
element ``k`` of every particle to that particle's accumulator, and no
round starts before the previous one has completed. Accumulation is
add-only, so the result does not depend on lane scheduling.

Particles with index ``>= n_active`` are inactive; their lanes contribute
nothing and their totals stay zero.
"""

from __future__ import annotations

from collections.abc import Callable

import jax
import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, Float, jaxtyped

__all__ = [
    "lane_log_densities",
    "sum_log_density",
    "max_log_density",
]


def lane_log_densities(
    log_density_fn: Callable[[Float[Array, " state_dim"], Array], Float[Array, " n_elements"]],
    particles: Float[Array, "n_particles state_dim"],
    y: Float[Array, " n_elements"],
) -> Float[Array, "n_particles n_elements"]:
    """Evaluate every lane's local log-density contribution.

    ``log_density_fn(x, y)`` returns the per-element log-densities of
    observation ``y`` given one particle ``x``.
    """
    return jax.vmap(lambda x: log_density_fn(x, y))(particles)


@jaxtyped(typechecker=beartype)
def sum_log_density(
    lanes: Float[Array, "n_particles n_elements"],
    n_active: int,
) -> Float[Array, " n_particles"]:
    """Fold lane contributions into one total per particle.

    Parameters
    ----------
    lanes : Array
        Local log-density of every ``(particle, element)`` lane.
    n_active : int
        Number of leading particles that are active. Fixed for the call.

    Returns
    -------
    totals : Array
        Per-particle log-density, zero for inactive particles.
    """
    n_particles, n_elements = lanes.shape
    active = jnp.arange(n_particles) < n_active
    contributions = jnp.where(active[:, None], lanes, 0.0)

    def round_fn(k, acc):
        return acc + contributions[:, k]

    return jax.lax.fori_loop(
        0, n_elements, round_fn, jnp.zeros(n_particles, dtype=lanes.dtype)
    )


@jaxtyped(typechecker=beartype)
def max_log_density(
    lanes: Float[Array, "n_particles n_elements"],
    n_active: int,
) -> Float[Array, ""]:
    """Largest per-particle total over the active particles.

    Returns ``-inf`` when there are no active particles or every active
    particle has zero density.
    """
    totals = sum_log_density(lanes, n_active)
    active = jnp.arange(lanes.shape[0]) < n_active
    return jnp.max(jnp.where(active, totals, -jnp.inf), initial=-jnp.inf)
