"""ESS-triggered resampling of theta-particles."""

from __future__ import annotations

import logging

import jax.numpy as jnp
from jaxtyping import PRNGKeyArray

from smc2.core.particles import FilterBuffer, ThetaParticles, ThetaPopulation
from smc2.core.resampling import ResamplingMethod, resample
from smc2.core.schedule import ScheduleElement
from smc2.core.weights import compute_ess
from smc2.distributed.comm import Communicator, SerialCommunicator

__all__ = ["ESSResampler"]

logger = logging.getLogger(__name__)


class ESSResampler:
    """Resample theta-particles when the pooled ESS drops below a threshold.

    Resampling draws global ancestor indices from the log-weights of the
    whole population. Every rank draws with the same key, so all ranks
    agree on the ancestors without exchanging them; each rank then gathers
    the rows its slots descend from and resets its log-weights to zero.

    Parameters
    ----------
    ess_threshold : float
        Resample when ``ESS < ess_threshold * global_size``.
    method : str
        Resampling scheme.
    comm : Communicator, optional
        Communication context, serial by default.
    """

    def __init__(
        self,
        ess_threshold: float = 0.5,
        method: ResamplingMethod = "systematic",
        comm: Communicator | None = None,
    ):
        self.ess_threshold = ess_threshold
        self.method = method
        self.comm = comm if comm is not None else SerialCommunicator()

    def is_triggered(self, ess: float, n: int) -> bool:
        return ess < self.ess_threshold * n

    def resample(self, key: PRNGKeyArray, now: ScheduleElement, s: ThetaPopulation) -> bool:
        """Resample ``s`` in place if its ESS is too low.

        Returns
        -------
        resampled : bool
            Whether resampling was performed.
        """
        log_weights = jnp.concatenate(self.comm.all_gather(s.log_weights))
        n = log_weights.shape[0]
        ess = float(compute_ess(log_weights))
        if not self.is_triggered(ess, n):
            s.ancestors = jnp.arange(s.offset, s.offset + s.size(), dtype=jnp.int32)
            return False

        ancestors = resample(key, log_weights, self.method)
        local = ancestors[s.offset : s.offset + s.size()]

        if self.comm.size == 1:
            particles, outs = s.particles, s.outs
        else:
            shards = self.comm.all_gather((s.particles, s.outs))
            particles = ThetaParticles.concatenate([p for p, _ in shards])
            outs = FilterBuffer.concatenate([o for _, o in shards])

        s.particles = particles.take(local)
        s.outs = outs.take(local)
        s.ancestors = local
        s.log_weights = jnp.zeros(s.size())
        logger.debug("Resampled at time %s with ESS %.2f", now.time, ess)
        return True
