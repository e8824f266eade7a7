"""Particle and population containers for SMC^2.

A theta-particle carries one hypothesis for the static parameters together
with the full state of its own particle filter over the latent process.
Theta-particles are stored as a batch: every field of
:class:`ThetaParticles` carries a leading particle axis, so the embedded
filters of a whole shard advance in one vectorized call. The population
holds the (local shard of the) batch, its log-weights and ancestors, and a
scratch batch of the same size used to build proposed replacements during
rejuvenation.

Accepting proposals exchanges rows between the population and the scratch
batch; the replaced state ends up in the scratch slot.
"""

from __future__ import annotations

import math

import chex
import jax
import jax.numpy as jnp
import numpy as np
from jaxtyping import Array, Bool, Float, Int

__all__ = [
    "sanitize_log",
    "sanitize_logs",
    "ThetaParticles",
    "FilterBuffer",
    "ThetaPopulation",
    "SMCInfo",
]


def sanitize_log(value) -> float:
    """Convert a log-density to a Python float, mapping NaN to ``-inf``."""
    value = float(value)
    if math.isnan(value):
        return -math.inf
    return value


def sanitize_logs(values: Array) -> Array:
    """Elementwise ``sanitize_log`` that stays on device."""
    return jnp.where(jnp.isnan(values), -jnp.inf, values)


def _rows(mask: Bool[Array, " n"], a: Array) -> Bool[Array, "..."]:
    return jnp.reshape(mask, mask.shape + (1,) * (a.ndim - 1))


@chex.dataclass(mappable_dataclass=False)
class ThetaParticles:
    """A batch of theta-particles and the state of their embedded filters.

    Attributes
    ----------
    theta : Array
        Unconstrained parameter vectors.
    x : Array
        Latent-state particles of every embedded filter.
    x_log_weights : Array
        Log-weights of the latent-state particles.
    x_ancestors : Array
        Ancestors of the latent-state particles at the last step.
    log_likelihood : Array
        Marginal log-likelihood estimate accumulated by each filter.
    log_prior : Array
        Log prior density of each ``theta``.
    log_proposal : Array
        Log density of each ``theta`` under the current adapted proposal,
        or ``-inf`` when no adapted proposal is in use.
    """

    theta: Float[Array, "n theta_dim"]
    x: Float[Array, "n n_x state_dim"]
    x_log_weights: Float[Array, "n n_x"]
    x_ancestors: Int[Array, "n n_x"]
    log_likelihood: Float[Array, " n"]
    log_prior: Float[Array, " n"]
    log_proposal: Float[Array, " n"]

    @classmethod
    def empty(cls, n: int, theta_dim: int, n_x: int, state_dim: int) -> ThetaParticles:
        return cls(
            theta=jnp.zeros((n, theta_dim)),
            x=jnp.zeros((n, n_x, state_dim)),
            x_log_weights=jnp.zeros((n, n_x)),
            x_ancestors=jnp.tile(jnp.arange(n_x, dtype=jnp.int32), (n, 1)),
            log_likelihood=jnp.full(n, -jnp.inf),
            log_prior=jnp.full(n, -jnp.inf),
            log_proposal=jnp.full(n, -jnp.inf),
        )

    @classmethod
    def concatenate(cls, batches: list[ThetaParticles]) -> ThetaParticles:
        return jax.tree_util.tree_map(lambda *xs: jnp.concatenate(xs), *batches)

    def __len__(self) -> int:
        return self.theta.shape[0]

    @property
    def n_x(self) -> int:
        return self.x.shape[1]

    @property
    def is_valid(self) -> Bool[Array, " n"]:
        """Whether each likelihood estimate is usable."""
        return jnp.isfinite(self.log_likelihood)

    def take(self, indices: Int[Array, " m"]) -> ThetaParticles:
        """Rows ``indices`` of the batch, as a new batch."""
        return jax.tree_util.tree_map(lambda a: a[indices], self)

    def select(self, mask: Bool[Array, " n"], other: ThetaParticles) -> ThetaParticles:
        """Rows of ``self`` where ``mask`` holds, rows of ``other`` elsewhere."""
        return jax.tree_util.tree_map(
            lambda a, b: jnp.where(_rows(mask, a), a, b), self, other
        )

    def copy(self) -> ThetaParticles:
        # arrays are immutable, a shallow copy is independent
        return self.replace()


class FilterBuffer:
    """Output buffers of a batch of embedded filters.

    Records the x-particles, their ancestors and log-weights of every
    filter at every output index so that a single trajectory per filter
    can be traced back through the genealogy once the run is over. Each
    recorded array carries the same leading particle axis as the
    :class:`ThetaParticles` it belongs to.
    """

    def __init__(self):
        self.theta: Array | None = None
        self.times: list[float] = []
        self.xs: list[Array] = []
        self.ancestors: list[Array] = []
        self.log_weights: list[Array] = []
        self.path: Array | None = None

    def __len__(self) -> int:
        return len(self.xs)

    def clear(self):
        self.theta = None
        self.times = []
        self.xs = []
        self.ancestors = []
        self.log_weights = []
        self.path = None

    def append(self, time: float, x: Array, ancestors: Array, log_weights: Array):
        self.times.append(float(time))
        self.xs.append(x)
        self.ancestors.append(ancestors)
        self.log_weights.append(log_weights)

    def _map(self, fn, *others: FilterBuffer) -> FilterBuffer:
        def apply(a, *bs):
            return None if a is None else fn(a, *bs)

        result = FilterBuffer()
        result.theta = apply(self.theta, *(o.theta for o in others))
        result.times = list(self.times)
        result.xs = [apply(*v) for v in zip(self.xs, *(o.xs for o in others))]
        result.ancestors = [
            apply(*v) for v in zip(self.ancestors, *(o.ancestors for o in others))
        ]
        result.log_weights = [
            apply(*v) for v in zip(self.log_weights, *(o.log_weights for o in others))
        ]
        result.path = apply(self.path, *(o.path for o in others))
        return result

    @classmethod
    def concatenate(cls, buffers: list[FilterBuffer]) -> FilterBuffer:
        first, rest = buffers[0], buffers[1:]
        return first._map(lambda *xs: jnp.concatenate(xs), *rest)

    def take(self, indices: Int[Array, " m"]) -> FilterBuffer:
        return self._map(lambda a: a[indices])

    def select(self, mask: Bool[Array, " n"], other: FilterBuffer) -> FilterBuffer:
        """Rows of ``self`` where ``mask`` holds, rows of ``other`` elsewhere.

        Both buffers must hold the same output indices.
        """
        if len(self) != len(other):
            raise ValueError(
                f"Cannot merge buffers of {len(self)} and {len(other)} outputs"
            )
        return self._map(lambda a, b: jnp.where(_rows(mask, a), a, b), other)

    def copy(self) -> FilterBuffer:
        return self._map(lambda a: a)


class ThetaPopulation:
    """Mutable population of theta-particles.

    In a multi-rank run each rank owns a contiguous shard of the global
    population; ``offset`` is the global index of the shard's first
    particle and ``global_size`` the size of the whole population.
    ``ancestors`` always holds global indices.

    Attributes
    ----------
    particles : ThetaParticles
        Local theta-particles.
    outs : FilterBuffer
        Output buffers of the local theta-particles.
    scratch, scratch_out
        Batch holding proposed replacements during rejuvenation, one row
        per local theta-particle.
    log_weights : Array
        Log-weights of the local theta-particles.
    ancestors : Array
        Global ancestor index of each local theta-particle.
    ess : float
        Effective sample size of the global population.
    log_likelihood : float
        Pooled log-likelihood of the population.
    log_increments : dict
        Log-likelihood increment recorded at each output index.
    """

    def __init__(
        self,
        particles: ThetaParticles,
        outs: FilterBuffer,
        scratch: ThetaParticles,
        scratch_out: FilterBuffer,
        offset: int = 0,
        global_size: int | None = None,
    ):
        if len(scratch) != len(particles):
            raise ValueError("The scratch batch must match the population size")
        n = len(particles)
        self.particles = particles
        self.outs = outs
        self.scratch = scratch
        self.scratch_out = scratch_out
        self.offset = offset
        self.global_size = n if global_size is None else global_size
        self.log_weights = jnp.zeros(n)
        self.ancestors = jnp.arange(offset, offset + n, dtype=jnp.int32)
        self.ess = float(self.global_size)
        self.log_likelihood = 0.0
        self.log_increments: dict[int, float] = {}

    def size(self) -> int:
        """Number of local theta-particles."""
        return len(self.particles)

    def __len__(self) -> int:
        return len(self.particles)

    def swap_scratch(self, accept: Bool[Array, " n"]):
        """Exchange accepted rows, with their buffers, with the scratch slot."""
        if not bool(jnp.any(accept)):
            return
        current, proposed = self.particles, self.scratch
        self.particles = proposed.select(accept, current)
        self.scratch = current.select(accept, proposed)
        current_out, proposed_out = self.outs, self.scratch_out
        self.outs = proposed_out.select(accept, current_out)
        self.scratch_out = current_out.select(accept, proposed_out)

    def theta_matrix(self) -> Float[Array, "n_theta theta_dim"]:
        return self.particles.theta

    def log_likelihoods(self) -> Float[Array, " n_theta"]:
        return self.particles.log_likelihood

    def snapshot(self) -> dict[str, np.ndarray]:
        """Host copy of the population, for diagnostics and output."""
        record = {
            "theta": np.asarray(self.particles.theta),
            "log_weights": np.asarray(self.log_weights),
            "ancestors": np.asarray(self.ancestors),
            "log_likelihoods": np.asarray(self.particles.log_likelihood),
            "log_priors": np.asarray(self.particles.log_prior),
            "ess": np.asarray(self.ess),
            "log_likelihood": np.asarray(self.log_likelihood),
        }
        if self.outs.path is not None:
            record["paths"] = np.asarray(self.outs.path)
        return record


@chex.dataclass(frozen=True)
class SMCInfo:
    """Diagnostics of one SMC^2 step.

    Attributes
    ----------
    ess : float
        Effective sample size after the step.
    resampled : bool
        Whether the theta-particles were resampled during the step.
    acceptance_rate : float | None
        Rejuvenation acceptance rate, if a rejuvenation ran.
    log_likelihood_increment : float
        Change in the pooled log-likelihood over the step.
    """

    ess: float
    resampled: bool
    acceptance_rate: float | None = None
    log_likelihood_increment: float = 0.0
