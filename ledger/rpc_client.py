"""
Solana JSON-RPC client.

Single aiohttp.ClientSession shared for all requests. The target URL is read
from the EndpointPool on every call, so a rotation takes effect on the very
next request without re-creating the session.

Endpoint health bookkeeping happens here, at the one place every provider
call passes through:
  - good response          -> pool.record_success()
  - 429 / rate-limit code  -> pool.record_failure(RATE_LIMIT), rotate if due, RateLimitedError
  - transport failure      -> pool.record_failure(CONNECTIVITY), rotate if due, ProviderError
"""

from __future__ import annotations
import asyncio
import base64
import itertools
import logging
import time
from typing import Any

import aiohttp

from ledger.errors import (
    AccountNotFoundError,
    MalformedResponseError,
    ProviderError,
    RateLimitedError,
)
from utils.endpoint_pool import EndpointPool, FailureKind

log = logging.getLogger(__name__)

# JSON-RPC error codes providers use for throttling
_RATE_LIMIT_CODES = frozenset({429, -32429, -32005})
_CONFIRMED = ("confirmed", "finalized")


def _is_rate_limit_error(error: dict) -> bool:
    if error.get("code") in _RATE_LIMIT_CODES:
        return True
    message = str(error.get("message", "")).lower()
    return "rate limit" in message or "too many requests" in message


def _is_account_not_found(error: dict) -> bool:
    message = str(error.get("message", "")).lower()
    return "could not find account" in message or "account not found" in message


class SolanaRpcClient:
    """
    Async JSON-RPC client for the Solana ledger.

    Call startup() before use; shutdown() closes the session.
    """

    def __init__(
        self,
        pool: EndpointPool,
        commitment: str = "confirmed",
        timeout_s: float = 10.0,
    ) -> None:
        self._pool = pool
        self._commitment = commitment
        self._timeout_s = timeout_s
        self._session: aiohttp.ClientSession | None = None
        self._ids = itertools.count(1)

    @property
    def pool(self) -> EndpointPool:
        return self._pool

    async def startup(self) -> None:
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=10, keepalive_timeout=60, ttl_dns_cache=300),
            timeout=aiohttp.ClientTimeout(total=self._timeout_s, connect=5),
            headers={"Content-Type": "application/json"},
        )
        log.info("Solana RPC client ready (endpoint=%s, %d in pool)", self._pool.current().label, len(self._pool))

    async def shutdown(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _strike(self, kind: FailureKind) -> None:
        self._pool.record_failure(kind)
        if self._pool.should_rotate():
            self._pool.rotate()

    async def _call(self, method: str, params: list[Any]) -> Any:
        assert self._session, "Call startup() first"
        endpoint = self._pool.current()
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            async with self._session.post(endpoint.rpc_url, json=body) as resp:
                if resp.status == 429:
                    self._strike(FailureKind.RATE_LIMIT)
                    raise RateLimitedError(f"{method}: HTTP 429", endpoint.label)
                if resp.status >= 400:
                    text = await resp.text()
                    raise ProviderError(f"{method}: HTTP {resp.status} {text[:120]}", endpoint.label)
                try:
                    payload = await resp.json(content_type=None)
                except ValueError as exc:
                    raise MalformedResponseError(f"{method}: non-JSON response ({exc})", endpoint.label) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self._strike(FailureKind.CONNECTIVITY)
            raise ProviderError(f"{method}: {type(exc).__name__} {exc}", endpoint.label) from exc

        if not isinstance(payload, dict):
            raise MalformedResponseError(f"{method}: unexpected payload type {type(payload).__name__}", endpoint.label)

        error = payload.get("error")
        if error:
            if not isinstance(error, dict):
                error = {"message": str(error)}
            if _is_rate_limit_error(error):
                self._strike(FailureKind.RATE_LIMIT)
                raise RateLimitedError(f"{method}: {error.get('message')}", endpoint.label)
            if _is_account_not_found(error):
                self._pool.record_success()
                raise AccountNotFoundError(f"{method}: {error.get('message')}", endpoint.label)
            raise ProviderError(f"{method}: RPC error {error.get('code')} {error.get('message')}", endpoint.label)

        if "result" not in payload:
            raise MalformedResponseError(f"{method}: response without result", endpoint.label)
        self._pool.record_success()
        return payload["result"]

    # ------------------------------------------------------------------
    # Public API methods
    # ------------------------------------------------------------------

    async def get_signatures_for_address(self, address: str, limit: int = 10) -> list[str]:
        """Newest-first signatures of transactions touching `address`."""
        result = await self._call(
            "getSignaturesForAddress",
            [address, {"limit": limit, "commitment": self._commitment}],
        )
        if not isinstance(result, list):
            raise MalformedResponseError("getSignaturesForAddress: result is not a list")
        return [item["signature"] for item in result if isinstance(item, dict) and item.get("signature")]

    async def get_transaction(self, signature: str) -> dict | None:
        """Raw getTransaction payload, or None if the node does not have it yet."""
        result = await self._call(
            "getTransaction",
            [signature, {
                "encoding": "json",
                "commitment": self._commitment,
                "maxSupportedTransactionVersion": 0,
            }],
        )
        if result is not None and not isinstance(result, dict):
            raise MalformedResponseError(f"getTransaction: unexpected result for {signature[:8]}")
        return result

    async def get_token_account_balance(self, token_account: str) -> int:
        """Raw token amount (base units). AccountNotFoundError if the account is missing."""
        result = await self._call("getTokenAccountBalance", [token_account, {"commitment": self._commitment}])
        try:
            return int(result["value"]["amount"])
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedResponseError(f"getTokenAccountBalance: {exc}") from exc

    async def get_latest_blockhash(self) -> str:
        result = await self._call("getLatestBlockhash", [{"commitment": self._commitment}])
        try:
            return result["value"]["blockhash"]
        except (KeyError, TypeError) as exc:
            raise MalformedResponseError(f"getLatestBlockhash: {exc}") from exc

    async def send_transaction(self, raw_tx: bytes) -> str:
        """Submit a signed, serialized transaction. Returns its signature."""
        sent_at = time.monotonic_ns()
        result = await self._call(
            "sendTransaction",
            [base64.b64encode(raw_tx).decode(), {
                "encoding": "base64",
                "skipPreflight": False,
                "preflightCommitment": self._commitment,
            }],
        )
        latency_ms = (time.monotonic_ns() - sent_at) / 1_000_000
        log.info("Transaction submitted sig=%s latency_ms=%.2f", str(result)[:8], latency_ms)
        return str(result)

    async def confirm_transaction(self, signature: str, timeout_s: float = 60.0, poll_s: float = 1.0) -> None:
        """
        Poll getSignatureStatuses until the transaction reaches the configured
        commitment. Raises ProviderError if it fails on-chain or times out.
        Rate-limited polls are tolerated until the deadline.
        """
        deadline = time.monotonic() + timeout_s
        while True:
            try:
                result = await self._call("getSignatureStatuses", [[signature], {"searchTransactionHistory": False}])
                statuses = (result or {}).get("value") or [None]
                status = statuses[0]
            except RateLimitedError as exc:
                log.warning("Confirmation poll rate limited for %s: %s", signature[:8], exc)
                status = None
            if status:
                if status.get("err"):
                    raise ProviderError(f"transaction {signature[:8]} failed: {status['err']}")
                if status.get("confirmationStatus") in _CONFIRMED:
                    return
            if time.monotonic() >= deadline:
                raise ProviderError(f"transaction {signature[:8]} not confirmed within {timeout_s:.0f}s")
            await asyncio.sleep(poll_s)
