"""Configuration models for SMC^2 runs."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

__all__ = ["SMC2Config"]


class SMC2Config(BaseModel):
    """Settings of an SMC^2 run.

    Attributes
    ----------
    n_theta : int
        Number of theta-particles in the whole population.
    n_x : int
        Number of x-particles in each embedded filter.
    nmoves : int
        PMMH moves per theta-particle when rejuvenating.
    ess_threshold : float
        Relative ESS below which theta-particles are resampled.
    resampling_method : str
        Resampling scheme for theta-particles and x-particles.
    filter_ess_threshold : float
        Relative ESS below which x-particles are resampled.
    adapter_scale : float
        Scale applied to the covariance of the adapted proposal.
    adapter_min_ess : float
        Pooled ESS required before the proposal adapts.
    rw_scale : float
        Step size of the default random-walk proposal.
    seed : int
        Seed of the run's PRNG key.
    diagnostics_dir : Path, optional
        If set, the population is snapshotted there after every step.
    """

    model_config = ConfigDict(frozen=True)

    n_theta: int = Field(default=64, gt=1)
    n_x: int = Field(default=128, gt=1)
    nmoves: int = Field(default=1, ge=1)
    ess_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    resampling_method: Literal["systematic", "multinomial", "stratified", "residual"] = (
        "systematic"
    )
    filter_ess_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    adapter_scale: float = Field(default=1.0, gt=0.0)
    adapter_min_ess: float = Field(default=0.0, ge=0.0)
    rw_scale: float = Field(default=0.1, gt=0.0)
    seed: int = 42
    diagnostics_dir: Path | None = None

    @model_validator(mode="after")
    def _check_adapter_reachable(self) -> SMC2Config:
        if self.adapter_min_ess > self.n_theta:
            raise ValueError("adapter_min_ess cannot exceed n_theta")
        return self
