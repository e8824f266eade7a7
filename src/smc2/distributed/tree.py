"""Tree-structured membership of communication groups.

A :class:`TreeNetworkNode` keeps the set of child handles it runs
collectives over. Any thread may ask for a child to join or leave at any
time; requests are queued and only take effect when the owner calls
:meth:`TreeNetworkNode.update_children` at a point where no collective over
the current children is in flight. Until then ``children`` keeps its old
meaning, so a collective never sees a half-updated group.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Hashable

from smc2.exceptions import ReconciliationError

__all__ = ["TreeNetworkNode"]

logger = logging.getLogger(__name__)


class TreeNetworkNode:
    """Node of a tree network with deferred child membership changes.

    Attributes
    ----------
    parent : Hashable or None
        Handle of the upward link, ``None`` for a root.
    """

    def __init__(self):
        self.parent: Hashable | None = None
        self._children: set[Hashable] = set()
        self._joining: set[Hashable] = set()
        self._leaving: set[Hashable] = set()
        self._lock = threading.Lock()

    def set_parent(self, handle: Hashable | None):
        self.parent = handle

    def add_child(self, handle: Hashable) -> int:
        """Request that ``handle`` join the group.

        Returns
        -------
        n : int
            Number of current and already pending children before this
            request. Concurrent requests may change it before the caller
            acts on it.
        """
        with self._lock:
            n = len(self._children) + len(self._joining)
            self._joining.add(handle)
        return n

    def remove_child(self, handle: Hashable):
        """Request that ``handle`` leave the group."""
        with self._lock:
            self._leaving.add(handle)

    def update_children(self) -> int:
        """Apply every pending join, then every pending leave.

        Must be called where no collective over ``children`` is in flight.

        Returns
        -------
        n : int
            Number of children after reconciliation.
        """
        with self._lock:
            self._children |= self._joining
            self._joining.clear()
            self._children -= self._leaving
            self._leaving.clear()
            n = len(self._children)

            if self._joining or self._leaving:
                raise ReconciliationError("pending membership changes after update")
        logger.debug("Tree node reconciled to %d children", n)
        return n

    @property
    def children(self) -> frozenset[Hashable]:
        """Children as of the last reconciliation."""
        with self._lock:
            return frozenset(self._children)

    @property
    def pending(self) -> tuple[frozenset[Hashable], frozenset[Hashable]]:
        """Pending ``(joins, leaves)``."""
        with self._lock:
            return frozenset(self._joining), frozenset(self._leaving)
