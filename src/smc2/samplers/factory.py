"""Assemble a ready-to-run sampler from a configuration."""

from __future__ import annotations

from collections.abc import Sequence

import chex
from jaxtyping import Array, Float

from smc2.config import SMC2Config
from smc2.core.particles import ThetaPopulation
from smc2.core.schedule import Schedule
from smc2.distributed.comm import Communicator, SerialCommunicator
from smc2.filters.bootstrap import BootstrapFilter
from smc2.models.base import StateSpaceModel
from smc2.samplers.adapter import GaussianAdapter
from smc2.samplers.marginal_sir import MarginalSIR
from smc2.samplers.output import SnapshotWriter
from smc2.samplers.resampler import ESSResampler

__all__ = [
    "SMC2Run",
    "shard_bounds",
    "build_population",
    "build_sampler",
]


@chex.dataclass(frozen=True)
class SMC2Run:
    """Everything needed to call :meth:`MarginalSIR.sample`."""

    sampler: MarginalSIR
    population: ThetaPopulation
    schedule: Schedule


def shard_bounds(n_theta: int, size: int, rank: int) -> tuple[int, int]:
    """``(offset, count)`` of the theta-particles owned by ``rank``."""
    if n_theta < size:
        raise ValueError(f"Cannot split {n_theta} theta-particles over {size} ranks")
    base, extra = divmod(n_theta, size)
    count = base + (1 if rank < extra else 0)
    offset = rank * base + min(rank, extra)
    return offset, count


def build_population(
    filter: BootstrapFilter,
    n_theta: int,
    comm: Communicator | None = None,
) -> ThetaPopulation:
    """Allocate this rank's shard of a population of ``n_theta`` particles."""
    comm = comm if comm is not None else SerialCommunicator()
    offset, count = shard_bounds(n_theta, comm.size, comm.rank)
    particles, outs = filter.allocate(count)
    scratch, scratch_out = filter.allocate(count)
    return ThetaPopulation(
        particles, outs, scratch, scratch_out, offset=offset, global_size=n_theta
    )


def build_sampler(
    config: SMC2Config,
    model: StateSpaceModel,
    observations: Float[Array, "n_obs obs_dim"],
    obs_times: Sequence[float] | None = None,
    comm: Communicator | None = None,
) -> SMC2Run:
    """Wire filter, adapter, resampler, sampler and population together.

    Parameters
    ----------
    config : SMC2Config
        Run settings.
    model : StateSpaceModel
        Model to fit.
    observations : Array
        Observations, one row per observation time.
    obs_times : sequence of float, optional
        Observation times; defaults to ``0, 1, ..., n_obs - 1``.
    comm : Communicator, optional
        Communication context, serial by default.
    """
    comm = comm if comm is not None else SerialCommunicator()
    if obs_times is None:
        obs_times = [float(t) for t in range(len(observations))]
    schedule = Schedule.from_times(obs_times)

    filter = BootstrapFilter(
        model,
        observations,
        n_x=config.n_x,
        ess_threshold=config.filter_ess_threshold,
        resampling_method=config.resampling_method,
        rw_scale=config.rw_scale,
    )
    filter.check_schedule(schedule)
    adapter = GaussianAdapter(
        scale=config.adapter_scale, min_ess=config.adapter_min_ess, comm=comm
    )
    resampler = ESSResampler(
        ess_threshold=config.ess_threshold, method=config.resampling_method, comm=comm
    )
    snapshots = None
    if config.diagnostics_dir is not None:
        snapshots = SnapshotWriter(config.diagnostics_dir, comm=comm)

    sampler = MarginalSIR(
        filter, adapter, resampler, nmoves=config.nmoves, comm=comm, snapshots=snapshots
    )
    population = build_population(filter, config.n_theta, comm=comm)
    return SMC2Run(sampler=sampler, population=population, schedule=schedule)
