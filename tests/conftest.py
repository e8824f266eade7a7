"""Shared fixtures."""

import threading

import jax.numpy as jnp
import pytest

from smc2.core.schedule import Schedule
from smc2.filters.bootstrap import BootstrapFilter
from smc2.models.dlm import LocalLevelModel


def _run_ranks(comms, fn, timeout=120.0):
    results = [None] * len(comms)
    errors = []

    def target(comm):
        try:
            results[comm.rank] = fn(comm)
        except Exception as exc:  # re-raised by the caller's assertion
            errors.append(exc)

    threads = [threading.Thread(target=target, args=(c,), daemon=True) for c in comms]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout)
    assert not any(t.is_alive() for t in threads), "ranks did not finish"
    assert not errors, errors
    return results


@pytest.fixture
def run_ranks():
    """Run ``fn(comm)`` on one thread per rank; results are ordered by rank."""
    return _run_ranks


@pytest.fixture
def observations():
    return jnp.array([0.1, 0.3, -0.2, 0.4, 0.6, 0.2])[:, None]


@pytest.fixture
def schedule(observations):
    return Schedule.from_times([float(t) for t in range(observations.shape[0])])


@pytest.fixture
def local_level_filter(observations):
    return BootstrapFilter(LocalLevelModel(), observations, n_x=32)
