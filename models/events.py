"""
Core data models passed between the monitor, orchestrator and executor.
All models use __slots__ for minimal memory footprint.
Anything that crosses a component boundary is frozen (immutable).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from urllib.parse import urlparse

LAMPORTS_PER_SOL = 1_000_000_000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Endpoint:
    """One ledger data provider: JSON-RPC URL plus its websocket URL."""
    rpc_url: str
    ws_url: str

    @property
    def label(self) -> str:
        """Host only. Provider URLs often carry API keys in the query string."""
        return urlparse(self.rpc_url).netloc or self.rpc_url.split("?", 1)[0]


class EventKind(str, Enum):
    BUY = "buy"
    SELL = "sell"
    GENERIC = "generic"    # venue activity with no clear direction (or below dust)
    UNKNOWN = "unknown"    # observed only; detail unavailable


@dataclass(frozen=True, slots=True)
class NativeTransfer:
    from_account: str
    to_account: str
    lamports: int


@dataclass(frozen=True, slots=True)
class TokenTransfer:
    from_account: str
    to_account: str
    mint: str
    amount: float


@dataclass(frozen=True, slots=True)
class ParsedTransaction:
    """
    Strict internal view of a ledger transaction.
    Built by the mapping functions in strategy.classifier from either the
    enhanced parsing-service payload or a raw RPC getTransaction payload.
    """
    signature: str
    declared_type: str = ""
    fee_payer: str = ""
    native_transfers: tuple[NativeTransfer, ...] = ()
    token_transfers: tuple[TokenTransfer, ...] = ()
    balance_deltas: dict[str, int] = field(default_factory=dict)   # account -> lamports
    program_ids: frozenset[str] = frozenset()
    block_time: int | None = None
    source: str = "rpc"    # "rpc" or "enhanced"


@dataclass(frozen=True, slots=True)
class ClassifiedEvent:
    signature: str
    kind: EventKind
    value_sol: float
    description: str
    attributed: bool = False   # touched the venue program
    degraded: bool = False     # classification skipped, observed only
    observed_at: datetime = field(default_factory=utcnow)

    @property
    def short_sig(self) -> str:
        return self.signature[:8]


@dataclass(frozen=True, slots=True)
class ReactionRequest:
    """
    Published by the EventMonitor when a buy crosses the threshold.
    Consumed exactly once by the Orchestrator.
    """
    trigger_signature: str
    value_sol: float
    asset: str
    created_at: datetime = field(default_factory=utcnow)


class ReactionOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DROPPED = "dropped"    # guard held or nothing to sell


@dataclass(frozen=True, slots=True)
class ReactionResult:
    outcome: ReactionOutcome
    amount: int
    signature: str | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def ok(self) -> bool:
        return self.outcome is ReactionOutcome.SUCCEEDED

    @staticmethod
    def dropped(amount: int, reason: str) -> "ReactionResult":
        return ReactionResult(outcome=ReactionOutcome.DROPPED, amount=amount, error=reason)


@dataclass(frozen=True, slots=True)
class Heartbeat:
    asset: str | None
    state: str
    seen_count: int
    endpoint: str
    timestamp: datetime = field(default_factory=utcnow)
