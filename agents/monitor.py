"""
Event Monitor — Data Ingestion & Classification.

Polls the ledger for new transactions on the watched token, classifies
each one exactly once, shows every one on the presentation sink, and
publishes a ReactionRequest to the EventBus for buys at or above the
threshold.

States:
  IDLE      — no watched asset; nothing runs until reconfigured
  STARTING  — tasks being launched
  POLLING   — poll loop + heartbeat (+ optional log stream) running
  STOPPING  — tasks being cancelled
  STOPPED

One tick:
  1. activity account = bonding-curve PDA (fallback: the mint itself)
  2. newest N signatures for it (empty curve -> retry on the mint)
  3. drop already-seen signatures, remember the rest
  4. detail: parsing-service batch, then RPC getTransaction for the gaps
  5. classify -> sink; buy >= threshold -> EventBus

Failure policy: nothing escapes a tick. Rate limits and transient errors
skip the rest of the tick (the endpoint pool has already counted the
strike); unparseable payloads and a dead parsing service degrade to
"observed" events.
"""

from __future__ import annotations
import asyncio
import logging
import time
from typing import Sequence

from bus.event_bus import EventBus
from bus.sink import NullSink, PresentationSink
from ledger.addresses import PUMP_PROGRAM_ID, bonding_curve_address
from ledger.errors import MalformedResponseError, ParseServiceError, ProviderError, RateLimitedError
from ledger.log_stream import LogStreamWatcher
from ledger.parse_client import EnhancedTransactionClient
from ledger.rpc_client import SolanaRpcClient
from models.events import ClassifiedEvent, EventKind, Heartbeat, ParsedTransaction, ReactionRequest
from models.state import MonitorState, PipelineStats, SeenSignatures
from strategy.classifier import DUST_FLOOR_SOL, classify, degraded_event, from_rpc_transaction

log = logging.getLogger(__name__)


class EventMonitor:

    def __init__(
        self,
        bus: EventBus,
        rpc: SolanaRpcClient,
        asset: str | None,
        threshold_sol: float,
        parser: EnhancedTransactionClient | None = None,
        sink: PresentationSink | None = None,
        stats: PipelineStats | None = None,
        program_id: str = str(PUMP_PROGRAM_ID),
        poll_interval_s: float = 10.0,
        heartbeat_interval_s: float = 15.0,
        signature_window: int = 10,
        seen_capacity: int = 1000,
        dust_floor_sol: float = DUST_FLOOR_SOL,
        enable_log_stream: bool = False,
        min_poke_gap_s: float = 2.0,
    ) -> None:
        self._bus = bus
        self._rpc = rpc
        self._asset = asset
        self._threshold = threshold_sol
        self._parser = parser
        self._sink = sink or NullSink()
        self._stats = stats if stats is not None else PipelineStats()
        self._program_id = program_id
        self._poll_interval_s = poll_interval_s
        self._heartbeat_interval_s = heartbeat_interval_s
        self._window = signature_window
        self._dust_floor = dust_floor_sol
        self._enable_log_stream = enable_log_stream
        self._min_poke_gap_s = min_poke_gap_s

        self._seen = SeenSignatures(seen_capacity)
        self._state = MonitorState.IDLE
        self._tasks: list[asyncio.Task] = []
        self._wake = asyncio.Event()
        self._activity_account: str | None = None
        self._account_resolved = False
        self.ticks = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def asset(self) -> str | None:
        return self._asset

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def seen(self) -> SeenSignatures:
        return self._seen

    def is_active(self) -> bool:
        return self._state == MonitorState.POLLING

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Returns False (and stays IDLE) when there is no asset to watch."""
        if self._state == MonitorState.POLLING:
            log.warning("Monitor is already running")
            return True
        if not self._asset:
            self._state = MonitorState.IDLE
            log.info("No target token set — waiting for token configuration")
            return False

        self._state = MonitorState.STARTING
        log.info(
            "Monitor starting for token %s... (poll=%.0fs heartbeat=%.0fs threshold=%.3f SOL)",
            self._asset[:8], self._poll_interval_s, self._heartbeat_interval_s, self._threshold,
        )
        self._tasks = [
            asyncio.create_task(self._poll_loop(), name=f"monitor-poll-{self._asset[:8]}"),
            asyncio.create_task(self._heartbeat_loop(), name=f"monitor-heartbeat-{self._asset[:8]}"),
        ]
        if self._enable_log_stream:
            stream = LogStreamWatcher(self._rpc.pool, self.activity_account(), self.poke)
            self._tasks.append(asyncio.create_task(stream.run(), name=f"monitor-stream-{self._asset[:8]}"))
        self._state = MonitorState.POLLING
        return True

    async def stop(self) -> None:
        """
        Cancel timers and wait for them. In-flight reactions are not ours to cancel.
        Seen signatures survive a restart so nothing already handled fires twice.
        """
        if self._state not in (MonitorState.POLLING, MonitorState.STARTING):
            return
        self._state = MonitorState.STOPPING
        log.info("Stopping monitor for %s...", (self._asset or "none")[:8])
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._state = MonitorState.STOPPED
        log.info("Monitor stopped")

    def poke(self, signature: str = "") -> None:
        """Wake the poll loop early (called by the log stream)."""
        self._wake.set()

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        while True:
            started = time.monotonic()
            await self._tick()
            self._wake.clear()
            remaining = max(0.0, self._poll_interval_s - (time.monotonic() - started))
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                continue
            # Woken by the stream: still keep a floor between ticks
            gap = self._min_poke_gap_s - (time.monotonic() - started)
            if gap > 0:
                await asyncio.sleep(gap)

    async def _tick(self) -> None:
        try:
            await self.poll_once()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.exception("Monitor tick failed unexpectedly: %s", exc)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval_s)
            self._sink.emit_heartbeat(Heartbeat(
                asset=self._asset,
                state=self._state.value,
                seen_count=len(self._seen),
                endpoint=self._rpc.pool.current().label,
            ))

    # ------------------------------------------------------------------
    # One polling cycle
    # ------------------------------------------------------------------

    def activity_account(self) -> str:
        """Bonding curve for the asset, or the mint itself if derivation fails."""
        assert self._asset, "no asset"
        if not self._account_resolved:
            self._account_resolved = True
            try:
                self._activity_account = str(bonding_curve_address(self._asset, self._program_id))
                log.info("Activity account for %s...: %s", self._asset[:8], self._activity_account)
            except ValueError as exc:
                log.warning("Bonding curve not derivable for %s (%s), monitoring token directly", self._asset[:8], exc)
                self._activity_account = None
        return self._activity_account or self._asset

    async def poll_once(self) -> list[ClassifiedEvent]:
        """Run one tick. Returns the events emitted during it."""
        if not self._asset:
            return []
        self.ticks += 1
        account = self.activity_account()

        try:
            signatures = await self._rpc.get_signatures_for_address(account, limit=self._window)
            if not signatures and account != self._asset:
                log.debug("No activity on bonding curve, trying token directly")
                signatures = await self._rpc.get_signatures_for_address(self._asset, limit=self._window)
        except RateLimitedError as exc:
            log.warning("Rate limited fetching signatures (%s) — skipping tick, endpoint now %s",
                        exc, self._rpc.pool.current().label)
            return []
        except ProviderError as exc:
            log.error("Error checking recent transactions: %s", exc)
            return []

        fresh = [sig for sig in signatures if self._seen.add(sig)]
        self._sink.emit_status(
            "running",
            f"Found {len(signatures)} transactions ({len(fresh)} new) — monitoring {self._asset[:8]}...",
        )
        if not fresh:
            return []

        events = await self._classify_batch(fresh)
        for event in events:
            self._publish(event)
        return events

    async def _classify_batch(self, fresh: Sequence[str]) -> list[ClassifiedEvent]:
        parsed: dict[str, ParsedTransaction] = {}
        if self._parser is not None:
            try:
                parsed = await self._parser.parse_transactions(fresh)
            except ParseServiceError as exc:
                log.warning("Parse service failed (%s) — reporting %d transactions as observed", exc, len(fresh))
                return [degraded_event(sig) for sig in fresh]

        venue = self._activity_account
        events: list[ClassifiedEvent] = []
        for i, sig in enumerate(fresh):
            tx = parsed.get(sig)
            if tx is None:
                try:
                    tx = await self._fetch_detail(sig)
                except MalformedResponseError as exc:
                    log.warning("Unparseable transaction %s...: %s", sig[:8], exc)
                    events.append(degraded_event(sig, "unparseable"))
                    continue
                except ProviderError as exc:
                    # Retry the unprocessed remainder next tick
                    for pending in fresh[i:]:
                        self._seen.discard(pending)
                    log.warning("Detail fetch failed at %s... (%s) — %d deferred to next tick",
                                sig[:8], exc, len(fresh) - i)
                    break
            if tx is None:
                events.append(degraded_event(sig, "detail unavailable"))
                continue
            events.append(classify(tx, self._program_id, venue, self._dust_floor))
        return events

    async def _fetch_detail(self, signature: str) -> ParsedTransaction | None:
        raw = await self._rpc.get_transaction(signature)
        if raw is None:
            return None
        tx = from_rpc_transaction(raw)
        if tx is None:
            raise MalformedResponseError(f"getTransaction payload for {signature[:8]} has no signature")
        return tx

    def _publish(self, event: ClassifiedEvent) -> None:
        self._stats.events_classified += 1
        self._sink.emit_event(event)
        if event.kind != EventKind.BUY:
            return
        self._stats.buys_observed += 1
        if event.value_sol < self._threshold:
            log.info("Buy %s... of %.4f SOL below threshold %.4f SOL", event.short_sig, event.value_sol, self._threshold)
            return
        log.info("Buy threshold met! %s... %.4f SOL >= %.4f SOL", event.short_sig, event.value_sol, self._threshold)
        self._bus.publish_reaction_request(ReactionRequest(
            trigger_signature=event.signature,
            value_sol=event.value_sol,
            asset=self._asset or "",
        ))
