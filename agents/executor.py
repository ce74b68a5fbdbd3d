"""
Reaction Executor — builds, signs and submits the sell.

Transaction layout:
  1. ComputeBudget.SetComputeUnitLimit
  2. ComputeBudget.SetComputeUnitPrice   (priority fee)
  3. pump.fun `sell` (amount, min_sol_output)

Single-flight: a boolean guard is tested and set with no await in between,
so on one event loop two overlapping calls can never both get through.
The guard is released in `finally` on every exit path. A failed reaction
is reported, never retried; the next independent trigger may try again.
"""

from __future__ import annotations
import logging
import struct

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ledger.addresses import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    PUMP_FEE_RECIPIENT,
    PUMP_GLOBAL,
    PUMP_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    CurveAccounts,
)
from ledger.rpc_client import SolanaRpcClient
from models.events import ReactionOutcome, ReactionResult

log = logging.getLogger(__name__)

# Anchor discriminator: sha256("global:sell")[:8]
SELL_DISCRIMINATOR = bytes([51, 230, 133, 164, 1, 127, 131, 173])


def build_sell_instruction(
    accounts: CurveAccounts,
    holder: Pubkey,
    amount: int,
    min_sol_output: int = 0,
    program_id: Pubkey = PUMP_PROGRAM_ID,
) -> Instruction:
    data = SELL_DISCRIMINATOR + struct.pack("<QQ", amount, min_sol_output)
    metas = [
        AccountMeta(PUMP_GLOBAL, False, False),
        AccountMeta(PUMP_FEE_RECIPIENT, False, True),
        AccountMeta(accounts.mint, False, False),
        AccountMeta(accounts.bonding_curve, False, True),
        AccountMeta(accounts.associated_bonding_curve, False, True),
        AccountMeta(accounts.holder_token_account, False, True),
        AccountMeta(holder, True, True),
        AccountMeta(SYSTEM_PROGRAM_ID, False, False),
        AccountMeta(ASSOCIATED_TOKEN_PROGRAM_ID, False, False),
        AccountMeta(TOKEN_PROGRAM_ID, False, False),
        AccountMeta(accounts.event_authority, False, False),
        AccountMeta(program_id, False, False),
    ]
    return Instruction(program_id, data, metas)


class ReactionExecutor:
    """
    Sells `amount` raw token units of the bound asset back to the curve.

    retarget() switches the asset for later calls; a call already in flight
    keeps the asset it started with.
    """

    def __init__(
        self,
        rpc: SolanaRpcClient,
        holder: Keypair,
        asset: str | None,
        program_id: str | Pubkey = PUMP_PROGRAM_ID,
        compute_unit_limit: int = 400_000,
        priority_fee_micro_lamports: int = 100_000,
        confirm_timeout_s: float = 60.0,
    ) -> None:
        self._rpc = rpc
        self._holder = holder
        self._asset = asset
        self._program_id = program_id if isinstance(program_id, Pubkey) else Pubkey.from_string(program_id)
        self._cu_limit = compute_unit_limit
        self._cu_price = priority_fee_micro_lamports
        self._confirm_timeout_s = confirm_timeout_s
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def asset(self) -> str | None:
        return self._asset

    def retarget(self, asset: str | None) -> None:
        log.info("Executor retargeted %s -> %s", (self._asset or "none")[:8], (asset or "none")[:8])
        self._asset = asset

    def accounts_for(self, asset: str) -> CurveAccounts:
        return CurveAccounts.derive(asset, self._holder.pubkey(), self._program_id)

    def build_transaction(self, asset: str, amount: int, blockhash: str) -> Transaction:
        accounts = self.accounts_for(asset)
        holder = self._holder.pubkey()
        instructions = [
            set_compute_unit_limit(self._cu_limit),
            set_compute_unit_price(self._cu_price),
            build_sell_instruction(accounts, holder, amount, program_id=self._program_id),
        ]
        recent = Hash.from_string(blockhash)
        message = Message.new_with_blockhash(instructions, holder, recent)
        return Transaction([self._holder], message, recent)

    async def execute(self, amount: int) -> ReactionResult:
        if amount <= 0:
            log.warning("Invalid sell amount %d, skipping", amount)
            return ReactionResult.dropped(amount, "amount must be positive")
        if self._in_progress:
            log.warning("Trade execution already in progress, dropping sell of %d", amount)
            return ReactionResult.dropped(amount, "execution in progress")
        asset = self._asset
        if asset is None:
            return ReactionResult.dropped(amount, "no asset bound")

        self._in_progress = True
        signature: str | None = None
        log.info("Executing sell of %d tokens (mint=%s)", amount, asset[:8])
        try:
            blockhash = await self._rpc.get_latest_blockhash()
            tx = self.build_transaction(asset, amount, blockhash)
            signature = await self._rpc.send_transaction(bytes(tx))
            await self._rpc.confirm_transaction(signature, timeout_s=self._confirm_timeout_s)
        except Exception as exc:
            log.error("Sell of %d failed (sig=%s): %s", amount, signature, exc)
            return ReactionResult(
                outcome=ReactionOutcome.FAILED,
                amount=amount,
                signature=signature,
                error=str(exc) or type(exc).__name__,
            )
        finally:
            self._in_progress = False

        log.info("Sell executed: sig=%s amount=%d", signature, amount)
        return ReactionResult(outcome=ReactionOutcome.SUCCEEDED, amount=amount, signature=signature)
