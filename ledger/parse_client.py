"""
Helius enhanced-transactions adapter.

Endpoint:
  POST https://api.helius.xyz/v0/transactions?api-key=<key>
  body: {"transactions": [<signature>, ...]}

One batch call replaces N getTransaction round-trips against the RPC pool,
which keeps the free tier under its rate limit. The service is optional:
any failure here raises ParseServiceError and the monitor degrades.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Sequence

import aiohttp

from ledger.errors import ParseServiceError
from models.events import ParsedTransaction
from strategy.classifier import from_enhanced_payload

log = logging.getLogger(__name__)

HELIUS_PARSE_URL = "https://api.helius.xyz/v0/transactions"
# Helius rejects batches larger than this
MAX_BATCH = 100


class EnhancedTransactionClient:
    """Batch signature -> ParsedTransaction lookup via the parsing service."""

    def __init__(self, api_key: str, base_url: str = HELIUS_PARSE_URL, timeout_s: float = 10.0) -> None:
        self._api_key = api_key
        self._url = base_url
        self._timeout_s = timeout_s
        self._session: aiohttp.ClientSession | None = None

    @property
    def name(self) -> str:
        return "helius-parse"

    async def startup(self) -> None:
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self._timeout_s, connect=3),
            connector=aiohttp.TCPConnector(limit=5, keepalive_timeout=30),
        )
        log.info("%s client initialized", self.name)

    async def shutdown(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def parse_transactions(self, signatures: Sequence[str]) -> dict[str, ParsedTransaction]:
        """
        Returns parsed transactions keyed by signature. Signatures the service
        did not return are simply absent; payloads that fail to map are skipped.
        """
        assert self._session, "Call startup() first"
        if not signatures:
            return {}
        body = {"transactions": list(signatures[:MAX_BATCH])}
        try:
            async with self._session.post(self._url, params={"api-key": self._api_key}, json=body) as resp:
                if resp.status >= 400:
                    raise ParseServiceError(f"parse API error: HTTP {resp.status}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise ParseServiceError(f"parse API unreachable: {type(exc).__name__} {exc}") from exc

        if not isinstance(data, list):
            raise ParseServiceError(f"parse API returned {type(data).__name__}, expected list")

        parsed: dict[str, ParsedTransaction] = {}
        for raw in data:
            tx = from_enhanced_payload(raw)
            if tx is None:
                log.debug("%s: skipping unmappable payload", self.name)
                continue
            parsed[tx.signature] = tx
        log.info("%s: parsed %d/%d transactions", self.name, len(parsed), len(body["transactions"]))
        return parsed
