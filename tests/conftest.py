"""
Shared test fixtures.

No test talks to a real ledger: the RPC client is an AsyncMock with a real
EndpointPool behind it, and the presentation sink records what it is given.
"""

from __future__ import annotations
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from bus.event_bus import EventBus
from bus.sink import PresentationSink
from ledger.addresses import PUMP_PROGRAM_ID, bonding_curve_address
from ledger.rpc_client import SolanaRpcClient
from models.events import Endpoint
from utils.endpoint_pool import EndpointPool


class RecordingSink(PresentationSink):
    def __init__(self) -> None:
        self.events = []
        self.heartbeats = []
        self.triggered = []
        self.results = []
        self.statuses: list[tuple[str, str, dict[str, Any]]] = []

    def emit_event(self, event) -> None:
        self.events.append(event)

    def emit_heartbeat(self, heartbeat) -> None:
        self.heartbeats.append(heartbeat)

    def emit_reaction_triggered(self, request) -> None:
        self.triggered.append(request)

    def emit_reaction_result(self, result) -> None:
        self.results.append(result)

    def emit_status(self, status: str, message: str, **details: Any) -> None:
        self.statuses.append((status, message, details))


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def endpoints():
    return [
        Endpoint("https://rpc-a.example.com/?api-key=secret", "wss://rpc-a.example.com/?api-key=secret"),
        Endpoint("https://rpc-b.example.com", "wss://rpc-b.example.com"),
        Endpoint("https://rpc-c.example.com", "wss://rpc-c.example.com"),
    ]


@pytest.fixture
def pool(endpoints, clock):
    return EndpointPool(endpoints, strike_limit=3, cooldown_s=30.0, clock=clock)


@pytest.fixture
def holder():
    return Keypair()


@pytest.fixture
def mint():
    return str(Pubkey.new_unique())


@pytest.fixture
def curve(mint):
    return str(bonding_curve_address(mint))


@pytest.fixture
def program_id():
    return str(PUMP_PROGRAM_ID)


@pytest.fixture
def mock_rpc(pool):
    """RPC client double: every network method is an AsyncMock."""
    rpc = MagicMock(spec=SolanaRpcClient)
    rpc.pool = pool
    rpc.get_signatures_for_address = AsyncMock(return_value=[])
    rpc.get_transaction = AsyncMock(return_value=None)
    rpc.get_token_account_balance = AsyncMock(return_value=0)
    rpc.get_latest_blockhash = AsyncMock(return_value=str(Hash.new_unique()))
    rpc.send_transaction = AsyncMock(return_value="5igSellSignature1111111111111111111111111111")
    rpc.confirm_transaction = AsyncMock(return_value=None)
    return rpc


def enhanced_payload(
    signature: str,
    program_id: str,
    curve: str,
    lamports: int,
    buyer: str = "BuyerWa11et1111111111111111111111111111111",
) -> dict:
    """
    Minimal parsing-service payload for a curve trade.
    lamports > 0: buyer paid the curve (buy); < 0: curve paid the seller (sell).
    """
    if lamports >= 0:
        transfers = [{"fromUserAccount": buyer, "toUserAccount": curve, "amount": lamports}]
    else:
        transfers = [{"fromUserAccount": curve, "toUserAccount": buyer, "amount": -lamports}]
    return {
        "signature": signature,
        "type": "SWAP",
        "source": "PUMP_FUN",
        "feePayer": buyer,
        "timestamp": 1_700_000_000,
        "nativeTransfers": transfers,
        "tokenTransfers": [],
        "accountData": [
            {"account": buyer, "nativeBalanceChange": -lamports - 5000},
            {"account": curve, "nativeBalanceChange": lamports},
        ],
        "instructions": [
            {"programId": "ComputeBudget111111111111111111111111111111", "innerInstructions": []},
            {"programId": program_id, "innerInstructions": [
                {"programId": "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"},
            ]},
        ],
    }


def rpc_payload(
    signature: str,
    program_id: str,
    curve: str,
    lamports: int,
    buyer: str = "BuyerWa11et1111111111111111111111111111111",
) -> dict:
    """Minimal getTransaction ("json" encoding) payload for a curve trade."""
    keys = [buyer, curve, "ComputeBudget111111111111111111111111111111", program_id]
    return {
        "blockTime": 1_700_000_000,
        "meta": {
            "err": None,
            "preBalances": [10_000_000_000, 50_000_000_000, 1, 1],
            "postBalances": [10_000_000_000 - lamports - 5000, 50_000_000_000 + lamports, 1, 1],
            "innerInstructions": [],
        },
        "transaction": {
            "signatures": [signature],
            "message": {
                "accountKeys": keys,
                "instructions": [
                    {"programIdIndex": 2, "accounts": [], "data": ""},
                    {"programIdIndex": 3, "accounts": [0, 1], "data": ""},
                ],
            },
        },
    }


class FakeResponse:
    """Stands in for an aiohttp response used as `async with session.post(...)`."""

    def __init__(self, status=200, payload=None, text="", json_error=None):
        self.status = status
        self._payload = payload
        self._text = text
        self._json_error = json_error

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def json(self, content_type=None):
        if self._json_error:
            raise self._json_error
        return self._payload

    async def text(self):
        return self._text
