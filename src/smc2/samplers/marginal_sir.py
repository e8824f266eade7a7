"""Marginal sequential importance resampling over parameters (SMC^2).

Each theta-particle carries its own particle filter over the latent
process; the filter's likelihood estimate weights the theta-particle.
Whenever the theta-population is resampled, every theta-particle is
rejuvenated by particle-marginal Metropolis-Hastings moves, each of which
re-runs a filter from the start of the schedule for the proposed
parameters. The filters of a shard advance together, one vectorized call
per schedule element.

References
----------
Chopin, N., Jacob, P. E. & Papaspiliopoulos, O. (2013). SMC^2: an
efficient algorithm for sequential analysis of state space models.
Journal of the Royal Statistical Society B, 75(3), 397-426.
"""

from __future__ import annotations

import enum
import logging
import math
from typing import Protocol

import jax
import jax.numpy as jnp
from jaxtyping import Array, Bool, Float, PRNGKeyArray

from smc2.core.particles import (
    SMCInfo,
    ThetaParticles,
    ThetaPopulation,
    sanitize_log,
    sanitize_logs,
)
from smc2.core.schedule import ScheduleElement, ScheduleIterator
from smc2.core.weights import ess_reduce, logsumexp_reduce
from smc2.distributed.comm import Communicator, SerialCommunicator
from smc2.exceptions import SamplerStateError
from smc2.filters.base import ParticleFilter
from smc2.samplers.output import SnapshotWriter

__all__ = [
    "Adapter",
    "Resampler",
    "OutputSink",
    "SamplerPhase",
    "metropolis_log_ratio",
    "metropolis_accept",
    "MarginalSIR",
]

logger = logging.getLogger(__name__)


class Adapter(Protocol):
    def clear(self): ...

    def add(self, s: ThetaPopulation): ...

    def ready(self) -> bool: ...

    def adapt(self): ...


class Resampler(Protocol):
    def resample(
        self, key: PRNGKeyArray, now: ScheduleElement, s: ThetaPopulation
    ) -> bool: ...


class OutputSink(Protocol):
    def write(self, s: ThetaPopulation): ...

    def clear(self): ...


class SamplerPhase(enum.Enum):
    CREATED = "created"
    INITIALIZED = "initialized"
    TERMINATED = "terminated"


def metropolis_log_ratio(
    current: ThetaParticles, proposed: ThetaParticles
) -> Float[Array, " n"]:
    """Log acceptance ratios of particle-marginal MH moves, row by row.

    The proposal term is dropped where neither particle has a finite
    proposal density, i.e. under the symmetric default proposal.
    """
    log_lr = proposed.log_likelihood - current.log_likelihood
    log_pr = proposed.log_prior - current.log_prior
    symmetric = ~jnp.isfinite(current.log_proposal) & ~jnp.isfinite(proposed.log_proposal)
    log_qr = jnp.where(symmetric, 0.0, current.log_proposal - proposed.log_proposal)
    return sanitize_logs(log_lr + log_pr + log_qr)


def metropolis_accept(
    log_u: Float[Array, " n"], current: ThetaParticles, proposed: ThetaParticles
) -> Bool[Array, " n"]:
    """Accept/reject decisions for replacing ``current`` rows by ``proposed``.

    An invalid proposal is always rejected; a valid proposal always
    replaces an invalid current particle. ``log_u`` may be ``-inf``.
    """
    accept = log_u < metropolis_log_ratio(current, proposed)
    accept = jnp.where(current.is_valid, accept, True)
    return jnp.where(proposed.is_valid, accept, False)


class MarginalSIR:
    """SMC^2 sampler driving a population of theta-particles.

    Lifecycle: ``init`` once, ``step`` until the schedule is exhausted,
    then ``term``; ``report_t`` and ``output_t`` may follow ``term``.
    :meth:`sample` runs the whole sequence.

    Parameters
    ----------
    filter : ParticleFilter
        Filter embedded in every theta-particle.
    adapter : Adapter
        Builds the rejuvenation proposal from the population.
    resampler : Resampler
        Decides on and performs resampling of theta-particles.
    nmoves : int
        PMMH moves per theta-particle when rejuvenating.
    comm : Communicator, optional
        Communication context, serial by default.
    snapshots : SnapshotWriter, optional
        Diagnostic writer invoked after initialization and every step.
    """

    def __init__(
        self,
        filter: ParticleFilter,
        adapter: Adapter,
        resampler: Resampler,
        nmoves: int = 1,
        comm: Communicator | None = None,
        snapshots: SnapshotWriter | None = None,
    ):
        if nmoves < 1:
            raise ValueError("nmoves must be at least 1")
        self.filter = filter
        self.adapter = adapter
        self.resampler = resampler
        self.nmoves = nmoves
        self.comm = comm if comm is not None else SerialCommunicator()
        self.snapshots = snapshots
        self.phase = SamplerPhase.CREATED
        self.last_resample = False
        self.last_accept_rate = 0.0

    def _require(self, *phases: SamplerPhase):
        if self.phase not in phases:
            allowed = ", ".join(p.value for p in phases)
            raise SamplerStateError(f"Sampler is {self.phase.value}, expected {allowed}")

    def _local_keys(self, key: PRNGKeyArray, s: ThetaPopulation) -> PRNGKeyArray:
        # particle-level randomness differs between ranks
        return jax.random.split(jax.random.fold_in(key, self.comm.rank), s.size())

    def _pooled(self, s: ThetaPopulation) -> tuple[float, float]:
        log_weights = jnp.concatenate(self.comm.all_gather(s.log_weights))
        return ess_reduce(log_weights)

    # High-level interface

    def sample(
        self,
        key: PRNGKeyArray,
        first: ScheduleIterator,
        last: ScheduleIterator,
        s: ThetaPopulation,
        out: OutputSink,
        in_init=None,
    ) -> list[SMCInfo]:
        """Run the sampler over the schedule ``[first, last)``.

        Returns
        -------
        infos : list of SMCInfo
            Diagnostics of every step.
        """
        init_key, key = jax.random.split(key)
        it = first
        self.init(init_key, it, s, out, in_init)
        self._snapshot(it, s)

        infos = []
        while it + 1 != last:
            key, step_key = jax.random.split(key)
            it, info = self.step(step_key, first, it, last, s, out)
            infos.append(info)
            self._snapshot(it, s)

        self.term(key, s)
        self.report_t(it.element)
        self.output_t(s, out)
        return infos

    # Low-level interface

    def init(
        self,
        key: PRNGKeyArray,
        first: ScheduleIterator,
        s: ThetaPopulation,
        out: OutputSink,
        in_init=None,
    ):
        """Initialize every theta-particle and its filter at ``first``.

        Failures of the filter's initialization propagate, as does a
        schedule the filter cannot follow.
        """
        self._require(SamplerPhase.CREATED)
        self.filter.check_schedule(first.schedule)
        now = first.element
        keys = jax.vmap(jax.random.split)(self._local_keys(key, s))
        init_keys, correct_keys = keys[:, 0], keys[:, 1]
        self.filter.init(init_keys, now, s.particles, s.outs, in_init)
        self.filter.output0(s.particles, s.outs)
        self.filter.correct(correct_keys, now, s.particles)
        self.filter.output(now, s.particles, s.outs)

        s.log_weights = s.log_likelihoods()
        s.ancestors = jnp.arange(s.offset, s.offset + s.size(), dtype=jnp.int32)
        s.log_likelihood = 0.0
        s.log_increments = {}
        s.ess, _ = self._pooled(s)
        out.clear()

        self.last_resample = False
        self.last_accept_rate = 0.0
        self.phase = SamplerPhase.INITIALIZED

    def step(
        self,
        key: PRNGKeyArray,
        first: ScheduleIterator,
        it: ScheduleIterator,
        last: ScheduleIterator,
        s: ThetaPopulation,
        out: OutputSink,
    ) -> tuple[ScheduleIterator, SMCInfo]:
        """Advance to the next observation, or to the end of the schedule.

        Returns
        -------
        it : ScheduleIterator
            New position in the schedule.
        info : SMCInfo
            Diagnostics of the step.
        """
        self._require(SamplerPhase.INITIALIZED)
        if it + 1 == last:
            raise SamplerStateError("Schedule is already exhausted")

        resampled = False
        accept_rate = None
        while True:
            key, resample_key, rejuvenate_key, step_key = jax.random.split(key, 4)
            self.adapt(s)
            self.resample(resample_key, it.element, s)
            self.rejuvenate(rejuvenate_key, first, it + 1, s)
            self.report(it.element, s)
            if self.last_resample:
                resampled = True
                accept_rate = self.last_accept_rate

            _, increments = self.filter.step(
                self._local_keys(step_key, s), it, last, s.particles, s.outs
            )
            s.log_weights = s.log_weights + increments
            it = it + 1
            if it + 1 == last or it.element.is_observed:
                break

        ess, pooled = self._pooled(s)
        increment = sanitize_log(pooled - s.log_likelihood)
        s.ess = ess
        s.log_increments[it.element.index_output] = increment
        s.log_likelihood = pooled

        info = SMCInfo(
            ess=ess,
            resampled=resampled,
            acceptance_rate=accept_rate,
            log_likelihood_increment=increment,
        )
        return it, info

    def adapt(self, s: ThetaPopulation):
        """Refit the adapter to the population, committing if it is ready."""
        self.adapter.clear()
        self.adapter.add(s)
        if self.adapter.ready():
            self.adapter.adapt()

    def resample(self, key: PRNGKeyArray, now: ScheduleElement, s: ThetaPopulation):
        """Resample theta-particles; rejuvenation runs only if this did."""
        self.last_resample = self.resampler.resample(key, now, s)

    def rejuvenate(
        self,
        key: PRNGKeyArray,
        first: ScheduleIterator,
        last: ScheduleIterator,
        s: ThetaPopulation,
    ):
        """Apply ``nmoves`` PMMH moves to every theta-particle.

        Each move proposes a replacement for every particle at once and
        filters the proposals with a finite prior over ``[first, last)``.
        A proposal whose filter degenerates carries a ``-inf`` likelihood
        and is rejected. Accepted proposals are swapped in from the scratch
        slot.
        """
        if not self.last_resample:
            return
        self._require(SamplerPhase.INITIALIZED)

        adapter = self.adapter if self.adapter.ready() else None
        naccept = 0
        for move in range(self.nmoves):
            move_key = jax.random.fold_in(key, move)
            propose_key, filter_key, u_key = jax.random.split(move_key, 3)
            self.filter.propose(
                self._local_keys(propose_key, s),
                first.element,
                s.particles,
                s.scratch,
                s.scratch_out,
                adapter,
            )
            if bool(jnp.any(jnp.isfinite(s.scratch.log_prior))):
                self.filter.filter(
                    self._local_keys(filter_key, s), first, last, s.scratch, s.scratch_out
                )

            u = jax.random.uniform(jax.random.fold_in(u_key, self.comm.rank), (s.size(),))
            accept = metropolis_accept(jnp.log(u), s.particles, s.scratch)
            s.swap_scratch(accept)
            naccept += int(jnp.sum(accept))

        ntotal = self.comm.all_reduce_sum(self.nmoves * s.size())
        naccept = self.comm.all_reduce_sum(naccept)
        self.last_accept_rate = naccept / ntotal if ntotal > 0 else 0.0

    def term(self, key: PRNGKeyArray, s: ThetaPopulation):
        """Finalize the pooled log-likelihood and sample one path per particle."""
        self._require(SamplerPhase.INITIALIZED)
        log_weights = jnp.concatenate(self.comm.all_gather(s.log_weights))
        s.log_likelihood += sanitize_log(logsumexp_reduce(log_weights)) - math.log(
            log_weights.shape[0]
        )
        self.filter.sample_path(self._local_keys(key, s), s.particles, s.outs)
        self.phase = SamplerPhase.TERMINATED

    def output_t(self, s: ThetaPopulation, out: OutputSink):
        """Write the final population."""
        self._require(SamplerPhase.TERMINATED)
        out.write(s)

    def report(self, now: ScheduleElement, s: ThetaPopulation):
        """Log a progress line for ``now`` (root rank only)."""
        if not self.comm.is_root:
            return
        line = f"{now.index_output}:\ttime {now.time:g}\tESS {s.ess:.2f}"
        if self.last_resample:
            line += f"\tresample-move with acceptance rate {self.last_accept_rate:.3f}"
        logger.info("%s", line)

    def report_t(self, now: ScheduleElement):
        """Log the final progress line (root rank only)."""
        if self.comm.is_root:
            logger.info("%d:\ttime %g\t...finished.", now.index_output, now.time)

    def _snapshot(self, it: ScheduleIterator, s: ThetaPopulation):
        if self.snapshots is not None:
            self.snapshots.write(it.element.index_output, s)
