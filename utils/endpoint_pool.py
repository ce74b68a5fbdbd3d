"""
Rotating pool of interchangeable ledger endpoints.

Strike-counting state machine in the same spirit as a circuit breaker, but
instead of opening it moves on to the next provider:

  strikes >= strike_limit AND cooldown elapsed since last rotation  ->  rotate

Successful calls remove one strike at a time, so an isolated 429 heals on
its own without forcing a switch. The pool never runs out: it wraps around
indefinitely.

Usage:
    pool = EndpointPool(endpoints)
    url = pool.current().rpc_url
    ...
    pool.record_failure(FailureKind.RATE_LIMIT)
    if pool.should_rotate():
        pool.rotate()
"""

from __future__ import annotations
import logging
import time
from enum import Enum, auto
from typing import Callable, Sequence

from models.events import Endpoint

log = logging.getLogger(__name__)


class FailureKind(Enum):
    RATE_LIMIT = auto()
    CONNECTIVITY = auto()


class EndpointPool:
    __slots__ = (
        "_endpoints", "_index", "_strikes", "_strike_limit",
        "_cooldown_s", "_last_rotation_s", "_clock", "rotations",
    )

    def __init__(
        self,
        endpoints: Sequence[Endpoint],
        strike_limit: int = 3,
        cooldown_s: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not endpoints:
            raise ValueError("EndpointPool needs at least one endpoint")
        self._endpoints: tuple[Endpoint, ...] = tuple(endpoints)
        self._index = 0
        self._strikes = 0
        self._strike_limit = strike_limit
        self._cooldown_s = cooldown_s
        self._clock = clock
        # Counts as a rotation: the first switch must also wait out the cooldown
        self._last_rotation_s = clock()
        self.rotations = 0

    @property
    def strikes(self) -> int:
        return self._strikes

    @property
    def index(self) -> int:
        return self._index

    def __len__(self) -> int:
        return len(self._endpoints)

    def current(self) -> Endpoint:
        return self._endpoints[self._index]

    def record_failure(self, kind: FailureKind) -> None:
        self._strikes += 1
        log.warning(
            "Endpoint %s strike %d/%d (%s)",
            self.current().label, self._strikes, self._strike_limit, kind.name.lower(),
        )

    def record_success(self) -> None:
        if self._strikes > 0:
            self._strikes -= 1

    def should_rotate(self) -> bool:
        return (
            self._strikes >= self._strike_limit
            and (self._clock() - self._last_rotation_s) >= self._cooldown_s
        )

    def rotate(self) -> Endpoint:
        old = self.current()
        self._index = (self._index + 1) % len(self._endpoints)
        self._strikes = 0
        self._last_rotation_s = self._clock()
        self.rotations += 1
        new = self.current()
        log.warning("Rotating endpoint %s -> %s", old.label, new.label)
        return new
