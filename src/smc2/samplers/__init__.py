"""SMC^2 sampler and its collaborators."""

from smc2.samplers.adapter import GaussianAdapter, weighted_moments
from smc2.samplers.factory import SMC2Run, build_population, build_sampler, shard_bounds
from smc2.samplers.marginal_sir import (
    Adapter,
    MarginalSIR,
    OutputSink,
    Resampler,
    SamplerPhase,
    metropolis_accept,
    metropolis_log_ratio,
)
from smc2.samplers.output import MemoryOutput, SnapshotWriter
from smc2.samplers.resampler import ESSResampler

__all__ = [
    "GaussianAdapter",
    "weighted_moments",
    "SMC2Run",
    "build_population",
    "build_sampler",
    "shard_bounds",
    "Adapter",
    "MarginalSIR",
    "OutputSink",
    "Resampler",
    "SamplerPhase",
    "metropolis_accept",
    "metropolis_log_ratio",
    "MemoryOutput",
    "SnapshotWriter",
    "ESSResampler",
]
