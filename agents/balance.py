"""
Balance Tracker — holder's position in the watched token.

The associated token account is derived once (pure, no network). Balance
reads go through the RPC pool; an account that was never created simply
means the holder owns none of the token.
"""

from __future__ import annotations
import logging
from decimal import ROUND_FLOOR, Decimal

from ledger.addresses import associated_token_address
from ledger.errors import AccountNotFoundError
from ledger.rpc_client import SolanaRpcClient

log = logging.getLogger(__name__)


def disposal_amount(balance: int, percentage: float) -> int:
    """floor(balance * percentage / 100), exact for any token supply."""
    if balance <= 0 or percentage <= 0:
        return 0
    amount = (Decimal(balance) * Decimal(str(percentage)) / Decimal(100)).to_integral_value(rounding=ROUND_FLOOR)
    return int(amount)


class BalanceTracker:

    def __init__(self, rpc: SolanaRpcClient, owner: str, mint: str) -> None:
        self._rpc = rpc
        self._owner = owner
        self._mint = mint
        self._token_account: str | None = None
        self.last_balance: int | None = None

    @property
    def mint(self) -> str:
        return self._mint

    @property
    def token_account(self) -> str | None:
        return self._token_account

    def initialize(self) -> str:
        if self._token_account is None:
            self._token_account = str(associated_token_address(self._owner, self._mint))
            log.info("Token account for mint=%s: %s", self._mint[:8], self._token_account)
        return self._token_account

    async def get_balance(self) -> int:
        """Raw token balance. Propagates ProviderError other than a missing account."""
        account = self.initialize()
        try:
            balance = await self._rpc.get_token_account_balance(account)
        except AccountNotFoundError:
            log.warning("Token account %s not found — balance is 0", account[:8])
            balance = 0
        self.last_balance = balance
        log.info("Current token balance: %d", balance)
        return balance

    async def calculate_disposal(self, percentage: float) -> int:
        balance = await self.get_balance()
        if balance == 0:
            log.warning("No tokens to sell")
            return 0
        amount = disposal_amount(balance, percentage)
        log.info("Calculated sell amount: %d (%s%% of %d)", amount, percentage, balance)
        return amount
