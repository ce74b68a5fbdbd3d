"""
CurveSentinel — Main Entrypoint

Boots the asyncio event loop, wires all components together, and runs until
SIGINT/SIGTERM is received.

Startup sequence:
  1. Load and validate settings from environment (+ config/endpoints.yaml)
  2. Load the holder keypair
  3. Open the RPC client (endpoint pool) and, if configured, the parse client
  4. Build executor + orchestrator, start monitoring
  5. Wait for shutdown signal

Shutdown sequence:
  1. Stop monitor timers and the request consumer
  2. Give in-flight reactions a chance to finish (never cancelled)
  3. Close network sessions
"""

from __future__ import annotations
import asyncio
import logging
import signal
import sys

from dotenv import load_dotenv
from solders.keypair import Keypair

# Load .env before reading settings
load_dotenv()

from agents.executor import ReactionExecutor
from agents.orchestrator import Orchestrator
from bus.event_bus import EventBus
from bus.sink import LoggingSink
from config.settings import Settings, load_settings
from ledger.addresses import load_keypair
from ledger.parse_client import EnhancedTransactionClient
from ledger.rpc_client import SolanaRpcClient
from utils.endpoint_pool import EndpointPool
from utils.logger import setup_logging

log = logging.getLogger(__name__)


async def run(settings: Settings, holder: Keypair) -> None:
    log.info("CurveSentinel starting (%d endpoint(s), parse service=%s)",
             len(settings.endpoints), bool(settings.helius_api_key))
    log.info("Wallet address: %s", holder.pubkey())

    # -----------------------------------------------------------------------
    # Infrastructure
    # -----------------------------------------------------------------------
    pool = EndpointPool(
        settings.endpoints,
        strike_limit=settings.rate_limit_strikes,
        cooldown_s=settings.rotation_cooldown_s,
    )
    rpc = SolanaRpcClient(pool, commitment=settings.commitment, timeout_s=settings.http_timeout_s)
    parser = (
        EnhancedTransactionClient(settings.helius_api_key, timeout_s=settings.http_timeout_s)
        if settings.helius_api_key else None
    )
    bus = EventBus()
    sink = LoggingSink()

    # -----------------------------------------------------------------------
    # Components
    # -----------------------------------------------------------------------
    executor = ReactionExecutor(
        rpc=rpc,
        holder=holder,
        asset=settings.target_token_address,
        program_id=settings.pump_program_id,
        compute_unit_limit=settings.compute_unit_limit,
        priority_fee_micro_lamports=settings.priority_fee_micro_lamports,
        confirm_timeout_s=settings.confirm_timeout_s,
    )
    orchestrator = Orchestrator(
        bus=bus,
        rpc=rpc,
        executor=executor,
        owner=str(holder.pubkey()),
        asset=settings.target_token_address,
        threshold_sol=settings.buy_threshold_sol,
        disposal_percentage=settings.sell_percentage,
        parser=parser,
        sink=sink,
        monitor_options={
            "program_id": settings.pump_program_id,
            "poll_interval_s": settings.poll_interval_s,
            "heartbeat_interval_s": settings.heartbeat_interval_s,
            "signature_window": settings.signature_window,
            "seen_capacity": settings.seen_capacity,
            "dust_floor_sol": settings.dust_floor_sol,
            "enable_log_stream": settings.enable_log_stream,
        },
    )

    await rpc.startup()
    if parser:
        await parser.startup()

    if orchestrator.tracker:
        try:
            balance = await orchestrator.tracker.get_balance()
            log.info("Initial token balance: %d", balance)
        except Exception as exc:
            log.warning("Initial balance check failed: %s", exc)

    # -----------------------------------------------------------------------
    # Run until signalled
    # -----------------------------------------------------------------------
    shutdown_event = asyncio.Event()

    def _handle_signal(sig: signal.Signals) -> None:
        log.info("Received %s — initiating graceful shutdown", sig.name)
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    await orchestrator.start()
    log.info("CurveSentinel is live.")
    await shutdown_event.wait()

    # -----------------------------------------------------------------------
    # Graceful shutdown
    # -----------------------------------------------------------------------
    log.info("Shutting down...")
    await orchestrator.stop()
    await orchestrator.drain()
    log.info("Final status: %s", orchestrator.status())
    if parser:
        await parser.shutdown()
    await rpc.shutdown()
    log.info("CurveSentinel stopped cleanly.")


def main() -> None:
    # Configuration problems are the only thing allowed to stop startup
    try:
        settings = load_settings()
        holder = load_keypair(settings.wallet_private_key)
    except EnvironmentError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)
    except ValueError as exc:
        print(f"Configuration error: WALLET_PRIVATE_KEY is not a valid keypair: {exc}", file=sys.stderr)
        sys.exit(2)
    setup_logging(settings.log_level)

    try:
        import uvloop  # type: ignore
        uvloop.run(run(settings, holder))
    except ImportError:
        asyncio.run(run(settings, holder))


if __name__ == "__main__":
    main()
