"""Multi-rank coordination: communicators and tree network membership."""

from smc2.distributed.comm import Communicator, SerialCommunicator, ThreadCommunicator
from smc2.distributed.tree import TreeNetworkNode

__all__ = [
    "Communicator",
    "SerialCommunicator",
    "ThreadCommunicator",
    "TreeNetworkNode",
]
