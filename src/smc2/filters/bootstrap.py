"""Bootstrap particle filters embedded in the theta-particles."""

from __future__ import annotations

import logging

import jax
import jax.numpy as jnp
from jaxtyping import Array, Float, PRNGKeyArray

from smc2.core.particles import FilterBuffer, ThetaParticles, sanitize_logs
from smc2.core.reduce import lane_log_densities, max_log_density, sum_log_density
from smc2.core.resampling import ResamplingMethod, resample
from smc2.core.schedule import Schedule, ScheduleElement, ScheduleIterator
from smc2.core.weights import compute_ess, logsumexp_reduce
from smc2.exceptions import InitializationError
from smc2.filters.base import ParticleFilter
from smc2.models.base import StateSpaceModel

__all__ = ["BootstrapFilter"]

logger = logging.getLogger(__name__)


def _split(keys: PRNGKeyArray, num: int = 2) -> list[PRNGKeyArray]:
    """Split a batch of keys row-wise into ``num`` batches."""
    split = jax.vmap(lambda k: jax.random.split(k, num))(keys)
    return [split[:, i] for i in range(num)]


class BootstrapFilter(ParticleFilter):
    """Bootstrap filter: propagate through the transition, weight by emission.

    One filter runs per theta-particle, all of them vectorized over the
    batch. x-particles of a filter are resampled before a prediction
    whenever their ESS drops below ``ess_threshold * n_x``. Observation
    densities are evaluated on a ``(x-particle, observation component)``
    lane grid and folded per particle with
    :func:`~smc2.core.reduce.sum_log_density`.

    A filter whose x-particles all have zero density at an observation is
    degenerate: its log-likelihood becomes ``-inf`` and stays there.

    Parameters
    ----------
    model : StateSpaceModel
        Model to filter.
    observations : Array
        Observations, one row per observed schedule element.
    n_x : int
        Number of x-particles per theta-particle.
    ess_threshold : float
        Relative ESS below which x-particles are resampled.
    resampling_method : str
        Resampling scheme for x-particles.
    rw_scale : float
        Standard deviation of the default random-walk theta proposal.
    """

    def __init__(
        self,
        model: StateSpaceModel,
        observations: Float[Array, "n_obs obs_dim"],
        n_x: int = 128,
        ess_threshold: float = 0.5,
        resampling_method: ResamplingMethod = "systematic",
        rw_scale: float = 0.1,
    ):
        observations = jnp.asarray(observations, dtype=jnp.float32)
        if observations.ndim == 1:
            observations = observations[:, None]
        if observations.shape[1] != model.obs_dim:
            raise ValueError(
                f"Observations have {observations.shape[1]} components, "
                f"model expects {model.obs_dim}"
            )
        self.model = model
        self.observations = observations
        self.n_x = n_x
        self.ess_threshold = ess_threshold
        self.resampling_method = resampling_method
        self.rw_scale = rw_scale

        state_dim = model.state_dim

        def init_latent(key, theta):
            x = model.initial_distribution(theta).sample(key, (n_x,))
            return jnp.reshape(x, (n_x, state_dim))

        def predict(key, theta, x, log_weights, dt):
            resample_key, propagate_key = jax.random.split(key)
            usable = jnp.any(jnp.isfinite(log_weights))
            triggered = usable & (compute_ess(log_weights) < ess_threshold * n_x)
            ancestors = jax.lax.cond(
                triggered,
                lambda: resample(resample_key, log_weights, resampling_method).astype(
                    jnp.int32
                ),
                lambda: jnp.arange(n_x, dtype=jnp.int32),
            )
            log_weights = jnp.where(triggered, jnp.zeros(n_x), log_weights)

            def one(k, xi):
                return model.transition_distribution(theta, xi, dt).sample(k)

            keys = jax.random.split(propagate_key, n_x)
            return jax.vmap(one)(keys, x[ancestors]), log_weights, ancestors

        def correct(theta, x, log_weights, log_likelihood, y):
            def log_density(xi, yi):
                return model.emission_distribution(theta, xi).log_prob(yi)

            lanes = lane_log_densities(log_density, x, y)
            # no x-particle can explain the observation
            degenerate = ~jnp.isfinite(max_log_density(lanes, n_x))
            updated = log_weights + sum_log_density(lanes, n_x)
            increment = logsumexp_reduce(updated) - logsumexp_reduce(log_weights)
            increment = jnp.where(degenerate, -jnp.inf, sanitize_logs(increment))
            updated = jnp.where(degenerate, -jnp.inf, updated)
            return updated, sanitize_logs(log_likelihood + increment), increment

        self._init_latent = jax.jit(jax.vmap(init_latent))
        self._predict = jax.jit(jax.vmap(predict, in_axes=(0, 0, 0, 0, None)))
        self._correct = jax.jit(jax.vmap(correct, in_axes=(0, 0, 0, 0, None)))
        self._sample_prior = jax.vmap(model.sample_prior)
        self._log_prior = jax.vmap(model.log_prior)

    @property
    def n_obs(self) -> int:
        return self.observations.shape[0]

    def check_schedule(self, schedule: Schedule):
        if schedule.n_obs > self.n_obs:
            raise ValueError(
                f"Schedule has {schedule.n_obs} observed elements, "
                f"but only {self.n_obs} observations were given"
            )

    def allocate(self, n: int) -> tuple[ThetaParticles, FilterBuffer]:
        s = ThetaParticles.empty(n, self.model.theta_dim, self.n_x, self.model.state_dim)
        return s, FilterBuffer()

    def _reset_latent(self, keys: PRNGKeyArray, s: ThetaParticles):
        n = len(s)
        # theta outside the prior's support is never filtered
        supported = jnp.isfinite(s.log_prior)
        s.x = self._init_latent(keys, s.theta)
        s.x_log_weights = jnp.where(supported[:, None], jnp.zeros((n, self.n_x)), -jnp.inf)
        s.x_ancestors = jnp.tile(jnp.arange(self.n_x, dtype=jnp.int32), (n, 1))
        s.log_likelihood = jnp.where(supported, 0.0, -jnp.inf)

    def init(
        self,
        keys: PRNGKeyArray,
        now: ScheduleElement,
        s: ThetaParticles,
        out: FilterBuffer,
        in_init=None,
    ):
        n, theta_dim = len(s), self.model.theta_dim
        theta_keys, x_keys = _split(keys)
        if in_init is not None and "theta" in in_init:
            theta = jnp.asarray(in_init["theta"], dtype=jnp.float32)
            if theta.shape == (theta_dim,):
                theta = jnp.broadcast_to(theta, (n, theta_dim))
            elif theta.shape != (n, theta_dim):
                raise InitializationError(
                    f"Initial theta has shape {theta.shape}, "
                    f"expected ({theta_dim},) or ({n}, {theta_dim})"
                )
        else:
            theta = self._sample_prior(theta_keys)

        log_prior = sanitize_logs(self._log_prior(theta))
        if not bool(jnp.all(jnp.isfinite(log_prior))):
            raise InitializationError("Initial theta lies outside the prior support")
        s.theta = theta
        s.log_prior = log_prior
        s.log_proposal = jnp.full(n, -jnp.inf)
        self._reset_latent(x_keys, s)

    def output0(self, s: ThetaParticles, out: FilterBuffer):
        out.clear()
        out.theta = s.theta

    def correct(
        self, keys: PRNGKeyArray, now: ScheduleElement, s: ThetaParticles
    ) -> Float[Array, " n"]:
        if not now.is_observed:
            return jnp.zeros(len(s))
        if now.index_obs >= self.n_obs:
            raise ValueError(
                f"Observation {now.index_obs} requested, only {self.n_obs} given"
            )
        y = self.observations[now.index_obs]
        s.x_log_weights, s.log_likelihood, increments = self._correct(
            s.theta, s.x, s.x_log_weights, s.log_likelihood, y
        )
        return increments

    def output(self, now: ScheduleElement, s: ThetaParticles, out: FilterBuffer):
        out.append(now.time, s.x, s.x_ancestors, s.x_log_weights)

    def step(
        self,
        keys: PRNGKeyArray,
        it: ScheduleIterator,
        last: ScheduleIterator,
        s: ThetaParticles,
        out: FilterBuffer,
    ) -> tuple[ScheduleIterator, Float[Array, " n"]]:
        predict_keys, correct_keys = _split(keys)
        dt = it.delta
        it = it + 1
        now = it.element
        s.x, s.x_log_weights, s.x_ancestors = self._predict(
            predict_keys, s.theta, s.x, s.x_log_weights, dt
        )
        increments = self.correct(correct_keys, now, s)
        self.output(now, s, out)
        return it, increments

    def propose(
        self,
        keys: PRNGKeyArray,
        first: ScheduleElement,
        s1: ThetaParticles,
        s2: ThetaParticles,
        out2: FilterBuffer,
        adapter=None,
    ):
        n, theta_dim = len(s1), self.model.theta_dim
        if adapter is None:
            steps = jax.vmap(lambda k: jax.random.normal(k, (theta_dim,)))(keys)
            theta = s1.theta + self.rw_scale * steps
            s1.log_proposal = jnp.full(n, -jnp.inf)
            s2.log_proposal = jnp.full(n, -jnp.inf)
        else:
            proposal = adapter.proposal
            theta = jax.vmap(proposal.sample)(keys)
            s1.log_proposal = sanitize_logs(jax.vmap(proposal.log_prob)(s1.theta))
            s2.log_proposal = sanitize_logs(jax.vmap(proposal.log_prob)(theta))

        s2.theta = theta
        s2.log_prior = sanitize_logs(self._log_prior(theta))
        s2.log_likelihood = jnp.full(n, -jnp.inf)
        out2.clear()

    def filter(
        self,
        keys: PRNGKeyArray,
        first: ScheduleIterator,
        last: ScheduleIterator,
        s: ThetaParticles,
        out: FilterBuffer,
    ) -> Float[Array, " n"]:
        init_keys, correct_keys, keys = _split(keys, 3)
        self._reset_latent(init_keys, s)
        self.output0(s, out)
        self.correct(correct_keys, first.element, s)
        self.output(first.element, s, out)

        it = first
        while it + 1 != last:
            keys, step_keys = _split(keys)
            it, _ = self.step(step_keys, it, last, s, out)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%d of %d filters degenerated", int(jnp.sum(~s.is_valid)), len(s))
        return s.log_likelihood

    def sample_path(self, keys: PRNGKeyArray, s: ThetaParticles, out: FilterBuffer):
        if len(out) == 0:
            out.path = None
            return
        final = out.log_weights[-1]
        usable = jnp.any(jnp.isfinite(final), axis=1, keepdims=True)
        final = jnp.where(usable, final, 0.0)
        b = jax.vmap(jax.random.categorical)(keys, final)

        rows = jnp.arange(len(s))
        path = []
        for t in range(len(out) - 1, -1, -1):
            path.append(out.xs[t][rows, b])
            b = out.ancestors[t][rows, b]
        out.path = jnp.stack(path[::-1], axis=1)
