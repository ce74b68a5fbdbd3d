"""
Program-log websocket stream.

Subscribes (logsSubscribe) to logs mentioning the watched activity account
on the active endpoint's streaming URL and calls `on_activity` for every
notification. The monitor uses this only to wake its poll loop early;
classification still goes through the normal polling path, so a dead
stream costs latency, never correctness.

Features:
- Persistent connection with exponential backoff reconnect
- Connection failures count as endpoint strikes and rotate the pool when due
- Heartbeat ping every 20s
"""

from __future__ import annotations
import asyncio
import json
import logging
from typing import Callable

import websockets
from websockets.exceptions import ConnectionClosed, InvalidStatus

from utils.endpoint_pool import EndpointPool, FailureKind

log = logging.getLogger(__name__)

OnActivity = Callable[[str], None]


class LogStreamWatcher:
    """
    Usage:
        watcher = LogStreamWatcher(pool, mention="<bonding curve>", on_activity=monitor.poke)
        task = asyncio.create_task(watcher.run())
        ...
        task.cancel()
    """

    PING_INTERVAL_S = 20
    INITIAL_BACKOFF_S = 1.0
    MAX_BACKOFF_S = 30.0

    def __init__(
        self,
        pool: EndpointPool,
        mention: str,
        on_activity: OnActivity,
        commitment: str = "confirmed",
    ) -> None:
        self._pool = pool
        self._mention = mention
        self._on_activity = on_activity
        self._commitment = commitment
        self.notifications = 0

    async def run(self) -> None:
        """Main loop — reconnects automatically on disconnect."""
        backoff = self.INITIAL_BACKOFF_S
        while True:
            endpoint = self._pool.current()
            try:
                await self._connect_and_consume(endpoint.ws_url)
                backoff = self.INITIAL_BACKOFF_S
            except InvalidStatus as exc:
                self._strike(FailureKind.RATE_LIMIT if exc.response.status_code == 429 else FailureKind.CONNECTIVITY)
                log.warning("Log stream rejected by %s: %s — retrying in %.1fs", endpoint.label, exc, backoff)
            except ConnectionClosed as exc:
                log.warning("Log stream closed on %s: %s — reconnecting in %.1fs", endpoint.label, exc, backoff)
            except (OSError, asyncio.TimeoutError) as exc:
                self._strike(FailureKind.CONNECTIVITY)
                log.warning("Log stream error on %s: %s — reconnecting in %.1fs", endpoint.label, exc, backoff)
            except Exception as exc:
                self._strike(FailureKind.CONNECTIVITY)
                log.error("Log stream failure on %s: %r — reconnecting in %.1fs", endpoint.label, exc, backoff)
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self.MAX_BACKOFF_S)

    def _strike(self, kind: FailureKind) -> None:
        self._pool.record_failure(kind)
        if self._pool.should_rotate():
            self._pool.rotate()

    async def _connect_and_consume(self, ws_url: str) -> None:
        async with websockets.connect(ws_url, ping_interval=self.PING_INTERVAL_S, ping_timeout=10) as ws:
            await ws.send(json.dumps({
                "jsonrpc": "2.0",
                "id": 1,
                "method": "logsSubscribe",
                "params": [{"mentions": [self._mention]}, {"commitment": self._commitment}],
            }))
            log.info("Log stream subscribed to mentions of %s", self._mention[:8])
            async for raw in ws:
                self._handle_message(raw)

    def _handle_message(self, raw: str | bytes) -> None:
        try:
            msg = json.loads(raw)
        except json.JSONDecodeError:
            log.warning("Malformed log stream message: %.80s", raw)
            return
        if not isinstance(msg, dict) or msg.get("method") != "logsNotification":
            return
        try:
            value = msg["params"]["result"]["value"]
        except (KeyError, TypeError):
            log.warning("Log notification without value: %.80s", raw)
            return
        if not isinstance(value, dict) or value.get("err"):
            return  # failed transactions never moved funds
        signature = value.get("signature", "")
        self.notifications += 1
        self._on_activity(signature)
