"""Interface of the particle filters embedded in the theta-particles.

Every operation acts on a whole :class:`~smc2.core.particles.ThetaParticles`
batch at once. The filters of different theta-particles never interact, so
implementations vectorize over the leading particle axis; keys carry the
same leading axis, one key per theta-particle.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from jaxtyping import Array, Float, PRNGKeyArray

from smc2.core.particles import FilterBuffer, ThetaParticles
from smc2.core.schedule import Schedule, ScheduleElement, ScheduleIterator

__all__ = ["ParticleFilter"]


class ParticleFilter(ABC):
    """Particle filters over the latent process of a batch of theta-particles.

    Implementations never raise on numerical trouble while filtering:
    a degenerate filter or an unusable proposal leaves ``-inf`` in the
    particle's ``log_likelihood`` (or ``log_prior``) instead.
    """

    def check_schedule(self, schedule: Schedule):
        """Raise ``ValueError`` if ``schedule`` cannot be filtered."""

    @abstractmethod
    def allocate(self, n: int) -> tuple[ThetaParticles, FilterBuffer]:
        """Storage for ``n`` theta-particles and their output buffers."""

    @abstractmethod
    def init(
        self,
        keys: PRNGKeyArray,
        now: ScheduleElement,
        s: ThetaParticles,
        out: FilterBuffer,
        in_init=None,
    ):
        """Draw ``theta`` (or read it from ``in_init``) and initial x-particles."""

    @abstractmethod
    def output0(self, s: ThetaParticles, out: FilterBuffer):
        """Reset ``out`` and record the static parameters."""

    @abstractmethod
    def correct(
        self, keys: PRNGKeyArray, now: ScheduleElement, s: ThetaParticles
    ) -> Float[Array, " n"]:
        """Weight x-particles by the observation at ``now``, if any.

        Returns the log-likelihood increments (zero when unobserved).
        """

    @abstractmethod
    def output(self, now: ScheduleElement, s: ThetaParticles, out: FilterBuffer):
        """Record the x-particles at ``now``."""

    @abstractmethod
    def step(
        self,
        keys: PRNGKeyArray,
        it: ScheduleIterator,
        last: ScheduleIterator,
        s: ThetaParticles,
        out: FilterBuffer,
    ) -> tuple[ScheduleIterator, Float[Array, " n"]]:
        """Advance one schedule element: predict, correct and output.

        Returns the advanced iterator and the log-likelihood increments.
        """

    @abstractmethod
    def propose(
        self,
        keys: PRNGKeyArray,
        first: ScheduleElement,
        s1: ThetaParticles,
        s2: ThetaParticles,
        out2: FilterBuffer,
        adapter=None,
    ):
        """Write into ``s2`` one replacement for every row of ``s1``.

        Without an adapter the replacements come from a symmetric default
        proposal and all ``log_proposal`` values are ``-inf``. With one,
        they are set to densities under the adapter's proposal.
        """

    @abstractmethod
    def filter(
        self,
        keys: PRNGKeyArray,
        first: ScheduleIterator,
        last: ScheduleIterator,
        s: ThetaParticles,
        out: FilterBuffer,
    ) -> Float[Array, " n"]:
        """Re-run the filters for ``s.theta`` over ``[first, last)``.

        Returns the log-likelihood estimates, ``-inf`` where a filter
        degenerates or ``theta`` lies outside the prior's support.
        """

    @abstractmethod
    def sample_path(self, keys: PRNGKeyArray, s: ThetaParticles, out: FilterBuffer):
        """Trace one latent trajectory per filter back through ``out`` into ``out.path``."""
