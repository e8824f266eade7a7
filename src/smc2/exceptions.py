"""Exceptions raised by smc2.

Numerical failures during rejuvenation are not exceptions: they surface as
a ``-inf`` log-likelihood on the proposed particle, which is then rejected.
"""

from __future__ import annotations

__all__ = [
    "SMC2Error",
    "InitializationError",
    "SamplerStateError",
    "ReconciliationError",
]


class SMC2Error(Exception):
    """Base class for smc2 errors."""


class InitializationError(SMC2Error):
    """A theta-particle could not be initialized."""


class SamplerStateError(SMC2Error):
    """A sampler operation was called outside its valid lifecycle state."""


class ReconciliationError(SMC2Error):
    """Pending membership changes survived a reconciliation."""
