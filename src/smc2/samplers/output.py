"""Output sinks for populations."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from smc2.core.particles import ThetaPopulation
from smc2.distributed.comm import Communicator, SerialCommunicator

__all__ = [
    "MemoryOutput",
    "SnapshotWriter",
]

logger = logging.getLogger(__name__)


class MemoryOutput:
    """Keeps host copies of every population written to it."""

    def __init__(self):
        self.records: list[dict[str, np.ndarray]] = []

    def clear(self):
        self.records = []

    def write(self, s: ThetaPopulation):
        record = s.snapshot()
        record["log_increments"] = np.asarray(
            [s.log_increments[k] for k in sorted(s.log_increments)]
        )
        self.records.append(record)

    @property
    def latest(self) -> dict[str, np.ndarray]:
        if not self.records:
            raise LookupError("Nothing has been written")
        return self.records[-1]


class SnapshotWriter:
    """Writes one ``.npz`` snapshot of the population per schedule step.

    Files are named ``sir<index_output>.npz``, with a ``.<rank>`` suffix
    before the extension in multi-rank runs. Snapshots never feed back
    into the run.
    """

    def __init__(self, directory: str | Path, comm: Communicator | None = None):
        self.directory = Path(directory)
        self.comm = comm if comm is not None else SerialCommunicator()

    def path(self, index_output: int) -> Path:
        if self.comm.size == 1:
            return self.directory / f"sir{index_output}.npz"
        return self.directory / f"sir{index_output}.{self.comm.rank}.npz"

    def write(self, index_output: int, s: ThetaPopulation) -> Path:
        """Write the snapshot of ``s``; every rank must call this together."""
        if self.comm.is_root:
            self.directory.mkdir(parents=True, exist_ok=True)
        # no rank writes before the directory exists
        self.comm.barrier()
        path = self.path(index_output)
        np.savez(path, **s.snapshot())
        logger.debug("Wrote snapshot %s", path)
        return path
