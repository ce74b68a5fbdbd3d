"""
Mutable state objects held by individual components.
These are NOT shared across components directly; each one owns its own state.
"""

from __future__ import annotations
import logging
from collections import OrderedDict
from dataclasses import asdict, dataclass
from enum import Enum

log = logging.getLogger(__name__)


class MonitorState(str, Enum):
    IDLE = "idle"            # no watched asset; waiting for configuration
    STARTING = "starting"
    POLLING = "polling"
    STOPPING = "stopping"
    STOPPED = "stopped"


class SeenSignatures:
    """
    Bounded dedup set owned by the EventMonitor.

    Eviction is by insertion order (oldest first), so this approximates
    "recently seen" rather than true LRU: a lookup does not refresh an entry.
    """

    def __init__(self, capacity: int = 1000) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._entries: OrderedDict[str, None] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __contains__(self, signature: object) -> bool:
        return signature in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, signature: str) -> bool:
        """Insert a signature. Returns False if it was already present."""
        if signature in self._entries:
            return False
        self._entries[signature] = None
        if len(self._entries) > self._capacity:
            self._entries.popitem(last=False)
        return True

    def discard(self, signature: str) -> None:
        self._entries.pop(signature, None)

    def clear(self) -> None:
        self._entries.clear()


@dataclass(slots=True)
class PipelineStats:
    """
    Owned by the Orchestrator. Updated after every classified event and
    every reaction attempt.
    """
    events_classified: int = 0
    buys_observed: int = 0
    reactions_triggered: int = 0
    reactions_succeeded: int = 0
    reactions_failed: int = 0
    reactions_dropped: int = 0
    reactions_skipped: int = 0   # threshold met but nothing to sell

    def as_dict(self) -> dict[str, int]:
        return asdict(self)
