"""Core containers and numerical primitives."""

from smc2.core.particles import (
    FilterBuffer,
    SMCInfo,
    ThetaParticles,
    ThetaPopulation,
    sanitize_log,
    sanitize_logs,
)
from smc2.core.reduce import lane_log_densities, max_log_density, sum_log_density
from smc2.core.resampling import (
    ResamplingMethod,
    multinomial_resample,
    resample,
    residual_resample,
    stratified_resample,
    systematic_resample,
)
from smc2.core.schedule import Schedule, ScheduleElement, ScheduleIterator
from smc2.core.weights import (
    compute_ess,
    ess_reduce,
    log_mean_exp,
    logsumexp_reduce,
    normalize_log_weights,
)

__all__ = [
    "FilterBuffer",
    "SMCInfo",
    "ThetaParticles",
    "ThetaPopulation",
    "sanitize_log",
    "sanitize_logs",
    "lane_log_densities",
    "max_log_density",
    "sum_log_density",
    "ResamplingMethod",
    "multinomial_resample",
    "resample",
    "residual_resample",
    "stratified_resample",
    "systematic_resample",
    "Schedule",
    "ScheduleElement",
    "ScheduleIterator",
    "compute_ess",
    "ess_reduce",
    "log_mean_exp",
    "logsumexp_reduce",
    "normalize_log_weights",
]
