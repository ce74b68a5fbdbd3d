"""
Typed event bus between the EventMonitor and the Orchestrator.

The monitor never calls the reaction handler directly; it drops a
ReactionRequest on a bounded asyncio.Queue and goes back to polling. That
keeps the handoff inspectable and lets the two sides be torn down
independently (e.g. on an asset change).

Queue sizing rationale:
  reaction_requests: 10  — the executor runs one reaction at a time and drops
                           overlap anyway; a deep backlog would only be stale
"""

from __future__ import annotations
import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from models.events import ReactionRequest

log = logging.getLogger(__name__)


class EventBus:
    __slots__ = ("reaction_requests",)

    def __init__(self, reaction_queue_size: int = 10) -> None:
        self.reaction_requests: asyncio.Queue[ReactionRequest] = asyncio.Queue(maxsize=reaction_queue_size)

    def publish_reaction_request(self, request: "ReactionRequest") -> bool:
        """Non-blocking publish. Drops and logs if the queue is full."""
        try:
            self.reaction_requests.put_nowait(request)
            return True
        except asyncio.QueueFull:
            log.error(
                "reaction_requests queue full — request for %s DROPPED. Orchestrator may be stalled.",
                request.trigger_signature[:8],
            )
            return False
