"""State-space models and distributions."""

from smc2.models.base import StateSpaceModel
from smc2.models.distributions import MultivariateNormal, Normal
from smc2.models.dlm import LocalLevelModel, LocalLevelParams
from smc2.models.sv import SVModel, SVParams

__all__ = [
    "StateSpaceModel",
    "Normal",
    "MultivariateNormal",
    "LocalLevelModel",
    "LocalLevelParams",
    "SVModel",
    "SVParams",
]
