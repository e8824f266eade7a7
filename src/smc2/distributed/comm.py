"""Explicit communication context for multi-rank runs.

Every operation that coordinates across ranks takes a :class:`Communicator`
rather than consulting process-wide state. Collectives block until every
rank of the group has entered them, and every rank must issue them in the
same order.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any

__all__ = [
    "Communicator",
    "SerialCommunicator",
    "ThreadCommunicator",
]


class Communicator(ABC):
    """Rank, size and collective operations of a group of ranks."""

    @property
    @abstractmethod
    def rank(self) -> int: ...

    @property
    @abstractmethod
    def size(self) -> int: ...

    @abstractmethod
    def all_gather(self, value: Any) -> list[Any]:
        """Collect ``value`` from every rank, ordered by rank."""

    @abstractmethod
    def barrier(self): ...

    def all_reduce_sum(self, value):
        """Sum ``value`` over every rank."""
        values = self.all_gather(value)
        total = values[0]
        for v in values[1:]:
            total = total + v
        return total

    @property
    def is_root(self) -> bool:
        return self.rank == 0


class SerialCommunicator(Communicator):
    """Trivial one-rank group."""

    @property
    def rank(self) -> int:
        return 0

    @property
    def size(self) -> int:
        return 1

    def all_gather(self, value):
        return [value]

    def barrier(self):
        pass


class _Rendezvous:
    def __init__(self, size: int):
        self.barrier = threading.Barrier(size)
        self.slots: list[Any] = [None] * size


class ThreadCommunicator(Communicator):
    """One rank of an in-process group whose ranks run on separate threads.

    Build a group with :meth:`create_group` and hand one communicator to
    each worker thread.
    """

    def __init__(self, rank: int, rendezvous: _Rendezvous):
        self._rank = rank
        self._rendezvous = rendezvous

    @classmethod
    def create_group(cls, size: int) -> list[ThreadCommunicator]:
        if size < 1:
            raise ValueError("A group needs at least one rank")
        rendezvous = _Rendezvous(size)
        return [cls(rank, rendezvous) for rank in range(size)]

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def size(self) -> int:
        return len(self._rendezvous.slots)

    def all_gather(self, value):
        r = self._rendezvous
        r.slots[self._rank] = value
        r.barrier.wait()
        values = list(r.slots)
        # nobody may overwrite a slot before every rank has read it
        r.barrier.wait()
        return values

    def barrier(self):
        self._rendezvous.barrier.wait()
