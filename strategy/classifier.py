"""
Transaction classification.

Two pure mapping functions turn provider payloads into ParsedTransaction:
  from_enhanced_payload  — parsing-service (Helius) JSON
  from_rpc_transaction   — raw getTransaction JSON ("json" encoding)

classify() then decides the event kind from two signals:
  1. attribution: did any instruction (top-level or inner) invoke the venue program?
  2. direction:   net SOL movement into the venue's activity account

      attributed, value < dust         -> GENERIC
      attributed, net inflow  > 0      -> BUY
      attributed, net outflow < 0      -> SELL
      attributed, net == 0             -> GENERIC
      not attributed                   -> GENERIC (never trigger-eligible)

This is a heuristic. Aggregated transactions (several swaps in one tx, or
a router hopping through the curve) can net out to the wrong sign. No
tie-break is attempted for those.
"""

from __future__ import annotations
from typing import Any

from models.events import (
    LAMPORTS_PER_SOL,
    ClassifiedEvent,
    EventKind,
    NativeTransfer,
    ParsedTransaction,
    TokenTransfer,
)

DUST_FLOOR_SOL = 0.01


def _as_list(value: Any) -> list:
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return list(value.values())
    return []


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


# ---------------------------------------------------------------------------
# Mapping: enhanced parsing-service payload
# ---------------------------------------------------------------------------

def from_enhanced_payload(raw: Any) -> ParsedTransaction | None:
    """None if the payload has no signature; every other field defaults safely."""
    if not isinstance(raw, dict):
        return None
    signature = raw.get("signature")
    if not signature or not isinstance(signature, str):
        return None

    native = tuple(
        NativeTransfer(
            from_account=str(t.get("fromUserAccount") or ""),
            to_account=str(t.get("toUserAccount") or ""),
            lamports=_as_int(t.get("amount")),
        )
        for t in _as_list(raw.get("nativeTransfers"))
        if isinstance(t, dict)
    )
    tokens = tuple(
        TokenTransfer(
            from_account=str(t.get("fromUserAccount") or ""),
            to_account=str(t.get("toUserAccount") or ""),
            mint=str(t.get("mint") or ""),
            amount=_as_float(t.get("tokenAmount")),
        )
        for t in _as_list(raw.get("tokenTransfers"))
        if isinstance(t, dict)
    )
    deltas: dict[str, int] = {}
    for entry in _as_list(raw.get("accountData")):
        if isinstance(entry, dict) and entry.get("account"):
            change = _as_int(entry.get("nativeBalanceChange"))
            if change:
                deltas[str(entry["account"])] = change

    programs: set[str] = set()
    for ix in _as_list(raw.get("instructions")):
        if not isinstance(ix, dict):
            continue
        if ix.get("programId"):
            programs.add(str(ix["programId"]))
        for inner in _as_list(ix.get("innerInstructions")):
            if isinstance(inner, dict) and inner.get("programId"):
                programs.add(str(inner["programId"]))

    timestamp = raw.get("timestamp")
    return ParsedTransaction(
        signature=signature,
        declared_type=str(raw.get("type") or ""),
        fee_payer=str(raw.get("feePayer") or ""),
        native_transfers=native,
        token_transfers=tokens,
        balance_deltas=deltas,
        program_ids=frozenset(programs),
        block_time=timestamp if isinstance(timestamp, int) else None,
        source="enhanced",
    )


# ---------------------------------------------------------------------------
# Mapping: raw RPC getTransaction payload
# ---------------------------------------------------------------------------

def _account_keys(message: dict, meta: dict) -> list[str]:
    keys: list[str] = []
    for key in _as_list(message.get("accountKeys")):
        # "json" encoding gives strings, "jsonParsed" gives {"pubkey": ...}
        keys.append(str(key.get("pubkey", "")) if isinstance(key, dict) else str(key))
    loaded = meta.get("loadedAddresses")
    if isinstance(loaded, dict):
        keys.extend(str(k) for k in _as_list(loaded.get("writable")))
        keys.extend(str(k) for k in _as_list(loaded.get("readonly")))
    return keys


def _program_of(ix: Any, keys: list[str]) -> str | None:
    if not isinstance(ix, dict):
        return None
    if ix.get("programId"):
        return str(ix["programId"])
    index = ix.get("programIdIndex")
    if isinstance(index, int) and 0 <= index < len(keys):
        return keys[index]
    return None


def from_rpc_transaction(raw: Any) -> ParsedTransaction | None:
    """None if the payload has no usable signature."""
    if not isinstance(raw, dict):
        return None
    tx = raw.get("transaction")
    if not isinstance(tx, dict):
        return None
    signatures = _as_list(tx.get("signatures"))
    if not signatures or not isinstance(signatures[0], str):
        return None

    message = tx.get("message") if isinstance(tx.get("message"), dict) else {}
    meta = raw.get("meta") if isinstance(raw.get("meta"), dict) else {}
    keys = _account_keys(message, meta)

    programs: set[str] = set()
    for ix in _as_list(message.get("instructions")):
        program = _program_of(ix, keys)
        if program:
            programs.add(program)
    for group in _as_list(meta.get("innerInstructions")):
        if not isinstance(group, dict):
            continue
        for ix in _as_list(group.get("instructions")):
            program = _program_of(ix, keys)
            if program:
                programs.add(program)

    deltas: dict[str, int] = {}
    pre = _as_list(meta.get("preBalances"))
    post = _as_list(meta.get("postBalances"))
    for i, (before, after) in enumerate(zip(pre, post)):
        change = _as_int(after) - _as_int(before)
        if change and i < len(keys):
            deltas[keys[i]] = change

    block_time = raw.get("blockTime")
    return ParsedTransaction(
        signature=signatures[0],
        fee_payer=keys[0] if keys else "",
        balance_deltas=deltas,
        program_ids=frozenset(programs),
        block_time=block_time if isinstance(block_time, int) else None,
        source="rpc",
    )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def venue_net_lamports(tx: ParsedTransaction, venue_account: str | None) -> int:
    """
    Net SOL into the venue for this transaction, in lamports.
    Positive = SOL flowed into the activity account (someone bought).
    """
    if venue_account:
        if venue_account in tx.balance_deltas:
            return tx.balance_deltas[venue_account]
        inflow = sum(t.lamports for t in tx.native_transfers if t.to_account == venue_account)
        outflow = sum(t.lamports for t in tx.native_transfers if t.from_account == venue_account)
        if inflow or outflow:
            return inflow - outflow
    # Direct-query path: the fee payer is the trader, their loss is the venue's gain
    if tx.fee_payer and tx.fee_payer in tx.balance_deltas:
        return -tx.balance_deltas[tx.fee_payer]
    if tx.fee_payer:
        sent = sum(t.lamports for t in tx.native_transfers if t.from_account == tx.fee_payer)
        received = sum(t.lamports for t in tx.native_transfers if t.to_account == tx.fee_payer)
        return sent - received
    return 0


def classify(
    tx: ParsedTransaction,
    program_id: str,
    venue_account: str | None,
    dust_floor_sol: float = DUST_FLOOR_SOL,
) -> ClassifiedEvent:
    attributed = program_id in tx.program_ids
    net = venue_net_lamports(tx, venue_account)
    value = abs(net) / LAMPORTS_PER_SOL
    short = tx.signature[:8]

    if not attributed:
        kind = EventKind.GENERIC
        description = f"Transaction {short}...: {value:.4f} SOL (outside venue)"
    elif value < dust_floor_sol:
        kind = EventKind.GENERIC
        description = f"PUMP {short}...: {value:.4f} SOL (dust)"
    elif net > 0:
        kind = EventKind.BUY
        description = f"BUY {short}...: {value:.4f} SOL"
    elif net < 0:
        kind = EventKind.SELL
        description = f"SELL {short}...: {value:.4f} SOL"
    else:
        kind = EventKind.GENERIC
        description = f"PUMP {short}...: activity"

    return ClassifiedEvent(
        signature=tx.signature,
        kind=kind,
        value_sol=value,
        description=description,
        attributed=attributed,
    )


def degraded_event(signature: str, reason: str = "detected") -> ClassifiedEvent:
    """Observed-only event for when no detail could be obtained. Never raises."""
    return ClassifiedEvent(
        signature=signature,
        kind=EventKind.UNKNOWN,
        value_sol=0.0,
        description=f"Transaction {signature[:8]}... ({reason})",
        degraded=True,
    )
