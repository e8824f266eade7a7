"""Particle filters embedded in theta-particles."""

from smc2.filters.base import ParticleFilter
from smc2.filters.bootstrap import BootstrapFilter

__all__ = [
    "ParticleFilter",
    "BootstrapFilter",
]
