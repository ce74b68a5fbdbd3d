"""
Pure address derivation for the pump.fun venue, plus keypair loading.

Nothing in here touches the network. Every derivation is a deterministic
function of (mint, owner, program id), so results are stable across calls
and safe to cache.

Seeds:
    bonding curve            ["bonding-curve", mint]             @ pump program
    associated token account [owner, token program, mint]        @ ATA program
    event authority          ["__event_authority"]               @ pump program
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass

from solders.keypair import Keypair
from solders.pubkey import Pubkey

log = logging.getLogger(__name__)

PUMP_PROGRAM_ID = Pubkey.from_string("6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P")
PUMP_GLOBAL = Pubkey.from_string("4wTV1YmiEkRvAtNtsSGPtUrqRYQMe5SKy2uB4Jjaxnjf")
PUMP_FEE_RECIPIENT = Pubkey.from_string("CebN5WGQ4jvEPvsVU4EoHEpgzq1VV7AbicfhtW4xC9iM")

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")

_BONDING_CURVE_SEED = b"bonding-curve"
_EVENT_AUTHORITY_SEED = b"__event_authority"


def _as_pubkey(value: str | Pubkey) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(value)


def bonding_curve_address(mint: str | Pubkey, program_id: str | Pubkey = PUMP_PROGRAM_ID) -> Pubkey:
    """The per-mint activity account where pump.fun trades settle SOL."""
    address, _bump = Pubkey.find_program_address(
        [_BONDING_CURVE_SEED, bytes(_as_pubkey(mint))], _as_pubkey(program_id)
    )
    return address


def associated_token_address(owner: str | Pubkey, mint: str | Pubkey) -> Pubkey:
    address, _bump = Pubkey.find_program_address(
        [bytes(_as_pubkey(owner)), bytes(TOKEN_PROGRAM_ID), bytes(_as_pubkey(mint))],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def event_authority_address(program_id: str | Pubkey = PUMP_PROGRAM_ID) -> Pubkey:
    address, _bump = Pubkey.find_program_address([_EVENT_AUTHORITY_SEED], _as_pubkey(program_id))
    return address


@dataclass(frozen=True, slots=True)
class CurveAccounts:
    """Every program-owned sub-address a sell instruction needs for one mint."""
    mint: Pubkey
    bonding_curve: Pubkey
    associated_bonding_curve: Pubkey
    holder_token_account: Pubkey
    event_authority: Pubkey

    @staticmethod
    def derive(mint: str | Pubkey, holder: str | Pubkey, program_id: str | Pubkey = PUMP_PROGRAM_ID) -> "CurveAccounts":
        mint_key = _as_pubkey(mint)
        curve = bonding_curve_address(mint_key, program_id)
        return CurveAccounts(
            mint=mint_key,
            bonding_curve=curve,
            associated_bonding_curve=associated_token_address(curve, mint_key),
            holder_token_account=associated_token_address(holder, mint_key),
            event_authority=event_authority_address(program_id),
        )


def load_keypair(secret: str) -> Keypair:
    """
    Accepts either a base58-encoded 64-byte secret (Phantom export) or the
    JSON byte array written by `solana-keygen`.
    Raises ValueError on anything else.
    """
    secret = secret.strip()
    if secret.startswith("["):
        try:
            raw = bytes(json.loads(secret))
        except (json.JSONDecodeError, TypeError) as exc:
            raise ValueError(f"Invalid keypair byte array: {exc}") from exc
        return Keypair.from_bytes(raw)
    return Keypair.from_base58_string(secret)
