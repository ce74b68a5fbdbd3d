"""
Presentation sink: the one-way outlet for everything operators see.

The core only ever writes to a sink. A dashboard, a socket broadcaster or a
CLI renderer plugs in by implementing this interface; headless runs use
LoggingSink, tests and embedded uses can pass NullSink.
"""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from typing import Any

from models.events import ClassifiedEvent, EventKind, Heartbeat, ReactionRequest, ReactionResult

log = logging.getLogger(__name__)


class PresentationSink(ABC):

    @abstractmethod
    def emit_event(self, event: ClassifiedEvent) -> None:
        """Every classified transaction, whatever its kind."""
        ...

    @abstractmethod
    def emit_heartbeat(self, heartbeat: Heartbeat) -> None:
        ...

    @abstractmethod
    def emit_reaction_triggered(self, request: ReactionRequest) -> None:
        ...

    @abstractmethod
    def emit_reaction_result(self, result: ReactionResult) -> None:
        ...

    @abstractmethod
    def emit_status(self, status: str, message: str, **details: Any) -> None:
        ...


class NullSink(PresentationSink):
    def emit_event(self, event: ClassifiedEvent) -> None:
        pass

    def emit_heartbeat(self, heartbeat: Heartbeat) -> None:
        pass

    def emit_reaction_triggered(self, request: ReactionRequest) -> None:
        pass

    def emit_reaction_result(self, result: ReactionResult) -> None:
        pass

    def emit_status(self, status: str, message: str, **details: Any) -> None:
        pass


class LoggingSink(PresentationSink):
    """Writes every notice to the `sink` logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or logging.getLogger("sink")

    def emit_event(self, event: ClassifiedEvent) -> None:
        level = logging.INFO if event.kind in (EventKind.BUY, EventKind.SELL) else logging.DEBUG
        self._log.log(level, "event %s kind=%s value=%.4f SOL", event.description, event.kind.value, event.value_sol)

    def emit_heartbeat(self, heartbeat: Heartbeat) -> None:
        self._log.info(
            "heartbeat asset=%s state=%s seen=%d endpoint=%s",
            (heartbeat.asset or "none")[:8], heartbeat.state, heartbeat.seen_count, heartbeat.endpoint,
        )

    def emit_reaction_triggered(self, request: ReactionRequest) -> None:
        self._log.info(
            "reaction triggered by %s... buy=%.4f SOL",
            request.trigger_signature[:8], request.value_sol,
        )

    def emit_reaction_result(self, result: ReactionResult) -> None:
        if result.ok:
            self._log.info("reaction %s amount=%d sig=%s", result.outcome.value, result.amount, result.signature)
        else:
            self._log.warning("reaction %s amount=%d error=%s", result.outcome.value, result.amount, result.error)

    def emit_status(self, status: str, message: str, **details: Any) -> None:
        self._log.info("status=%s %s %s", status, message, details or "")
