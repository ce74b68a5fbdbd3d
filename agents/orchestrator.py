"""
Orchestrator — lifecycle and reaction wiring.

Owns the EventMonitor and BalanceTracker for the current asset, consumes
ReactionRequests from the EventBus and runs each one as its own task:

    request -> balance -> disposal amount -> executor.execute -> sink

Changing the watched asset is serialised by a lock: the old monitor is
fully stopped (its tasks awaited) before the new one starts, so the two
asset streams never overlap. Reactions already in flight are left alone
and finish against the asset they started with.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Any

from solders.pubkey import Pubkey

from agents.balance import BalanceTracker
from agents.executor import ReactionExecutor
from agents.monitor import EventMonitor
from bus.event_bus import EventBus
from bus.sink import NullSink, PresentationSink
from ledger.errors import ProviderError
from ledger.parse_client import EnhancedTransactionClient
from ledger.rpc_client import SolanaRpcClient
from models.events import ReactionOutcome, ReactionRequest
from models.state import PipelineStats

log = logging.getLogger(__name__)


class Orchestrator:

    def __init__(
        self,
        bus: EventBus,
        rpc: SolanaRpcClient,
        executor: ReactionExecutor,
        owner: str,
        asset: str | None,
        threshold_sol: float,
        disposal_percentage: float,
        parser: EnhancedTransactionClient | None = None,
        sink: PresentationSink | None = None,
        monitor_options: dict[str, Any] | None = None,
    ) -> None:
        self._bus = bus
        self._rpc = rpc
        self._executor = executor
        self._owner = owner
        self._threshold = threshold_sol
        self._disposal_pct = disposal_percentage
        self._parser = parser
        self._sink = sink or NullSink()
        self._monitor_options = monitor_options or {}
        self.stats = PipelineStats()

        self._asset = asset
        self._tracker: BalanceTracker | None = None
        self._monitor: EventMonitor | None = None
        self._running = False
        self._consumer: asyncio.Task | None = None
        self._reactions: set[asyncio.Task] = set()
        self._swap_lock = asyncio.Lock()
        self._rebuild(asset)

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    @property
    def asset(self) -> str | None:
        return self._asset

    @property
    def monitor(self) -> EventMonitor | None:
        return self._monitor

    @property
    def tracker(self) -> BalanceTracker | None:
        return self._tracker

    @property
    def is_running(self) -> bool:
        return self._running

    def _rebuild(self, asset: str | None) -> None:
        self._asset = asset
        self._executor.retarget(asset)
        if asset:
            self._tracker = BalanceTracker(self._rpc, self._owner, asset)
            self._tracker.initialize()
        else:
            self._tracker = None
        self._monitor = EventMonitor(
            bus=self._bus,
            rpc=self._rpc,
            asset=asset,
            threshold_sol=self._threshold,
            parser=self._parser,
            sink=self._sink,
            stats=self.stats,
            **self._monitor_options,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            log.warning("Orchestrator is already running")
            return
        self._running = True
        if self._consumer is None:
            self._consumer = asyncio.create_task(self.run(), name="orchestrator-reactions")
        started = await self._monitor.start()
        log.info("Watching for buys >= %.3f SOL, will sell %s%% on trigger", self._threshold, self._disposal_pct)
        self._sink.emit_status(
            "running" if started else "idle",
            "Monitoring for transactions" if started else "Waiting for token configuration",
            **self._summary(),
        )

    async def stop(self) -> None:
        """Stop timers and the request consumer. In-flight reactions keep running."""
        if not self._running:
            return
        self._running = False
        await self._monitor.stop()
        if self._consumer:
            self._consumer.cancel()
            await asyncio.gather(self._consumer, return_exceptions=True)
            self._consumer = None
        self._sink.emit_status("stopped", "Bot stopped", **self._summary())

    async def drain(self, timeout_s: float = 30.0) -> None:
        """Wait (without cancelling) for in-flight reactions to finish."""
        if not self._reactions:
            return
        log.info("Waiting up to %.0fs for %d in-flight reaction(s)", timeout_s, len(self._reactions))
        _done, pending = await asyncio.wait(set(self._reactions), timeout=timeout_s)
        if pending:
            log.warning("%d reaction(s) still in flight at shutdown", len(pending))

    async def change_watched_asset(self, new_asset: str) -> None:
        try:
            Pubkey.from_string(new_asset)
        except ValueError as exc:
            raise ValueError(f"Invalid token address {new_asset!r}: {exc}") from exc
        async with self._swap_lock:
            old = self._asset
            log.info("Changing monitored token %s -> %s", (old or "none")[:8], new_asset[:8])
            await self._monitor.stop()
            self._rebuild(new_asset)
            if self._running:
                await self._monitor.start()
            self._sink.emit_status("running", f"Now monitoring token: {new_asset[:8]}...", **self._summary())
            log.info("Token changed to %s", new_asset)

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "monitor_state": self._monitor.state.value if self._monitor else None,
            "trade_in_progress": self._executor.in_progress,
            "endpoint": self._rpc.pool.current().label,
            "last_balance": self._tracker.last_balance if self._tracker else None,
            **self._summary(),
            **self.stats.as_dict(),
        }

    def _summary(self) -> dict[str, Any]:
        return {
            "target_token": self._asset,
            "buy_threshold": self._threshold,
            "sell_percentage": self._disposal_pct,
        }

    # ------------------------------------------------------------------
    # Reaction handling
    # ------------------------------------------------------------------

    async def run(self) -> None:
        log.info("Orchestrator consuming reaction requests")
        while True:
            try:
                request = await self._bus.reaction_requests.get()
                self.submit(request)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                log.exception("Orchestrator unexpected error: %s", exc)

    def submit(self, request: ReactionRequest) -> asyncio.Task | None:
        if request.asset != self._asset:
            log.info("Dropping stale request for %s... (now watching %s)",
                     request.asset[:8], (self._asset or "none")[:8])
            return None
        task = asyncio.create_task(self.handle_request(request), name=f"reaction-{request.trigger_signature[:8]}")
        self._reactions.add(task)
        task.add_done_callback(self._reactions.discard)
        return task

    async def handle_request(self, request: ReactionRequest) -> None:
        self.stats.reactions_triggered += 1
        self._sink.emit_reaction_triggered(request)
        tracker, executor = self._tracker, self._executor
        if tracker is None:
            return
        if executor.in_progress:
            self.stats.reactions_dropped += 1
            log.info("Sell already in progress — ignoring trigger %s...", request.trigger_signature[:8])
            return

        try:
            amount = await tracker.calculate_disposal(self._disposal_pct)
        except ProviderError as exc:
            self.stats.reactions_failed += 1
            log.error("Could not read balance for trigger %s...: %s", request.trigger_signature[:8], exc)
            self._sink.emit_status("error", f"Balance lookup failed: {exc}")
            return

        if amount == 0:
            self.stats.reactions_skipped += 1
            log.warning("No tokens available to sell")
            return

        log.info("Executing sell order for %s%% (%d tokens)...", self._disposal_pct, amount)
        result = await executor.execute(amount)
        self._sink.emit_reaction_result(result)

        if result.outcome is ReactionOutcome.SUCCEEDED:
            self.stats.reactions_succeeded += 1
            try:
                new_balance = await tracker.get_balance()
                log.info("New token balance: %d", new_balance)
            except ProviderError as exc:
                log.warning("Could not refresh balance after sell: %s", exc)
        elif result.outcome is ReactionOutcome.DROPPED:
            self.stats.reactions_dropped += 1
        else:
            self.stats.reactions_failed += 1
