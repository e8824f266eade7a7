"""Proposal adaptation from the current theta-population."""

from __future__ import annotations

import logging

import jax.numpy as jnp
from jaxtyping import Array, Float

from smc2.core.particles import ThetaPopulation
from smc2.core.weights import compute_ess, normalize_log_weights
from smc2.distributed.comm import Communicator, SerialCommunicator
from smc2.models.distributions import MultivariateNormal

__all__ = ["GaussianAdapter", "weighted_moments"]

logger = logging.getLogger(__name__)


def weighted_moments(
    thetas: Float[Array, "n theta_dim"],
    log_weights: Float[Array, " n"],
) -> tuple[Float[Array, " theta_dim"], Float[Array, "theta_dim theta_dim"]]:
    """Weighted mean and covariance of a set of parameter vectors."""
    weights = jnp.exp(normalize_log_weights(log_weights))
    mean = jnp.sum(thetas * weights[:, None], axis=0)
    centered = thetas - mean
    cov = jnp.einsum("i,ij,ik->jk", weights, centered, centered)
    return mean, cov


class GaussianAdapter:
    """Independent multivariate normal proposal fitted to the population.

    ``add`` pools theta-particles and log-weights from every rank, so all
    ranks commit the same proposal. The proposal covariance is the
    weighted covariance of the population times ``scale``.

    Parameters
    ----------
    scale : float
        Multiplier of the fitted covariance.
    min_ess : float
        Pooled ESS required before :meth:`ready` reports true. The adapter
        also always needs an ESS above ``theta_dim + 1``.
    comm : Communicator, optional
        Communication context, serial by default.
    """

    def __init__(
        self,
        scale: float = 1.0,
        min_ess: float = 0.0,
        comm: Communicator | None = None,
    ):
        self.scale = scale
        self.min_ess = min_ess
        self.comm = comm if comm is not None else SerialCommunicator()
        self.proposal: MultivariateNormal | None = None
        self.clear()

    def clear(self):
        """Discard accumulated statistics. The committed proposal is kept."""
        self._thetas = []
        self._log_weights = []

    def add(self, s: ThetaPopulation):
        """Accumulate the theta-particles of ``s`` from every rank."""
        gathered = self.comm.all_gather((s.theta_matrix(), s.log_weights))
        for thetas, log_weights in gathered:
            self._thetas.append(thetas)
            self._log_weights.append(log_weights)

    def _pooled(self):
        return jnp.concatenate(self._thetas), jnp.concatenate(self._log_weights)

    def ready(self) -> bool:
        """Whether enough has been accumulated for a non-degenerate proposal."""
        if not self._thetas:
            return False
        thetas, log_weights = self._pooled()
        ess = float(compute_ess(log_weights))
        return ess > max(thetas.shape[1] + 1, self.min_ess)

    def adapt(self):
        """Commit a proposal fitted to the accumulated statistics."""
        thetas, log_weights = self._pooled()
        mean, cov = weighted_moments(thetas, log_weights)
        self.proposal = MultivariateNormal(loc=mean, covariance_matrix=self.scale * cov)
        if not self.proposal.is_valid:
            logger.debug("Adapted covariance is not positive definite")
