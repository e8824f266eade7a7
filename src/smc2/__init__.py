"""smc2: sequential Monte Carlo over parameters and latent trajectories.

A population of parameter particles, each with its own embedded particle
filter, is moved through a time schedule, resampled on low effective sample
size and rejuvenated with particle-marginal Metropolis-Hastings moves.
"""

from smc2.config import SMC2Config
from smc2.core import Schedule, ScheduleElement, ScheduleIterator, ThetaPopulation
from smc2.distributed import SerialCommunicator, ThreadCommunicator, TreeNetworkNode
from smc2.filters import BootstrapFilter, ParticleFilter
from smc2.samplers import (
    ESSResampler,
    GaussianAdapter,
    MarginalSIR,
    MemoryOutput,
    build_sampler,
)

__version__ = "0.1.0"

__all__ = [
    "SMC2Config",
    "Schedule",
    "ScheduleElement",
    "ScheduleIterator",
    "ThetaPopulation",
    "SerialCommunicator",
    "ThreadCommunicator",
    "TreeNetworkNode",
    "BootstrapFilter",
    "ParticleFilter",
    "ESSResampler",
    "GaussianAdapter",
    "MarginalSIR",
    "MemoryOutput",
    "build_sampler",
]
