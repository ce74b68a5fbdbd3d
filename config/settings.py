"""
Environment-based configuration.
All secrets come from environment variables — never hardcoded.
The ordered provider list lives in config/endpoints.yaml.

Usage:
    from config.settings import load_settings
    settings = load_settings()          # raises EnvironmentError on bad config
    print(settings.buy_threshold_sol)
"""

from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from solders.pubkey import Pubkey

from models.events import Endpoint

DEFAULT_ENDPOINTS_FILE = Path(__file__).with_name("endpoints.yaml")
DEFAULT_PUMP_PROGRAM_ID = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"


def _require(key: str) -> str:
    val = os.environ.get(key)
    if not val:
        raise EnvironmentError(f"Required environment variable '{key}' is not set.")
    return val


def _optional(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


def _number(key: str, default: str, cast: type = float):
    raw = _optional(key, default)
    try:
        return cast(raw)
    except ValueError:
        raise EnvironmentError(f"Environment variable '{key}' must be a {cast.__name__}, got {raw!r}.")


def _pubkey(key: str, value: str) -> str:
    try:
        Pubkey.from_string(value)
    except ValueError:
        raise EnvironmentError(f"Environment variable '{key}' is not a valid Solana address: {value!r}")
    return value


@dataclass(frozen=True)
class Settings:
    # --- Wallet / target ---
    wallet_private_key: str               # base58 secret or solana-keygen JSON array
    target_token_address: str | None      # None = monitor idles until a token is set
    pump_program_id: str

    # --- Strategy ---
    buy_threshold_sol: float              # Buys at or above this trigger a sell (e.g. 0.2)
    sell_percentage: float                # Share of holdings sold per trigger (0 < p <= 100)

    # --- Providers ---
    endpoints: tuple[Endpoint, ...]       # Ordered, rotated on rate limiting
    helius_api_key: str                   # Empty = no parsing service
    http_timeout_s: float
    commitment: str

    # --- Endpoint rotation ---
    rate_limit_strikes: int
    rotation_cooldown_s: float

    # --- Monitoring ---
    poll_interval_s: float
    heartbeat_interval_s: float
    signature_window: int
    seen_capacity: int
    dust_floor_sol: float
    enable_log_stream: bool

    # --- Execution ---
    compute_unit_limit: int
    priority_fee_micro_lamports: int
    confirm_timeout_s: float

    log_level: str


def load_endpoints(path: Path, helius_api_key: str = "") -> tuple[Endpoint, ...]:
    endpoints: list[Endpoint] = []

    rpc_override = _optional("SOLANA_RPC_URL")
    if rpc_override:
        ws_override = _optional("SOLANA_WSS_URL") or rpc_override.replace("https://", "wss://", 1)
        endpoints.append(Endpoint(rpc_url=rpc_override, ws_url=ws_override))
    if helius_api_key:
        endpoints.append(Endpoint(
            rpc_url=f"https://mainnet.helius-rpc.com/?api-key={helius_api_key}",
            ws_url=f"wss://mainnet.helius-rpc.com/?api-key={helius_api_key}",
        ))

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        data = {}
    except yaml.YAMLError as exc:
        raise EnvironmentError(f"Endpoints file {path} is not valid YAML: {exc}")

    for entry in data.get("endpoints", []) or []:
        if not isinstance(entry, dict) or not entry.get("rpc_url"):
            raise EnvironmentError(f"Endpoints file {path}: every entry needs an rpc_url ({entry!r})")
        rpc_url = str(entry["rpc_url"])
        ws_url = str(entry.get("ws_url") or rpc_url.replace("https://", "wss://", 1))
        endpoints.append(Endpoint(rpc_url=rpc_url, ws_url=ws_url))

    # Same provider listed twice would just rotate onto itself
    unique = tuple(dict.fromkeys(endpoints))
    if not unique:
        raise EnvironmentError(f"No RPC endpoints configured (checked SOLANA_RPC_URL and {path}).")
    return unique


def load_settings() -> Settings:
    helius_api_key = _optional("HELIUS_API_KEY")
    target = _optional("TARGET_TOKEN_ADDRESS").strip() or None
    sell_percentage = _number("SELL_PERCENTAGE", "25")
    buy_threshold = _number("BUY_THRESHOLD_SOL", "0.2")

    if not 0 < sell_percentage <= 100:
        raise EnvironmentError("SELL_PERCENTAGE must be between 0 and 100.")
    if buy_threshold < 0:
        raise EnvironmentError("BUY_THRESHOLD_SOL must not be negative.")

    return Settings(
        wallet_private_key=_require("WALLET_PRIVATE_KEY"),
        target_token_address=_pubkey("TARGET_TOKEN_ADDRESS", target) if target else None,
        pump_program_id=_pubkey("PUMP_PROGRAM_ID", _optional("PUMP_PROGRAM_ID", DEFAULT_PUMP_PROGRAM_ID)),
        buy_threshold_sol=buy_threshold,
        sell_percentage=sell_percentage,
        endpoints=load_endpoints(Path(_optional("ENDPOINTS_FILE", str(DEFAULT_ENDPOINTS_FILE))), helius_api_key),
        helius_api_key=helius_api_key,
        http_timeout_s=_number("HTTP_TIMEOUT_S", "10"),
        commitment=_optional("COMMITMENT", "confirmed"),
        rate_limit_strikes=_number("RATE_LIMIT_STRIKES", "3", int),
        rotation_cooldown_s=_number("ROTATION_COOLDOWN_S", "30"),
        poll_interval_s=_number("POLL_INTERVAL_S", "10"),
        heartbeat_interval_s=_number("HEARTBEAT_INTERVAL_S", "15"),
        signature_window=_number("SIGNATURE_WINDOW", "10", int),
        seen_capacity=_number("SEEN_CAPACITY", "1000", int),
        dust_floor_sol=_number("DUST_FLOOR_SOL", "0.01"),
        enable_log_stream=_optional("ENABLE_LOG_STREAM", "false").lower() in ("1", "true", "yes"),
        compute_unit_limit=_number("COMPUTE_UNIT_LIMIT", "400000", int),
        priority_fee_micro_lamports=_number("PRIORITY_FEE_MICROLAMPORTS", "100000", int),
        confirm_timeout_s=_number("CONFIRM_TIMEOUT_S", "60"),
        log_level=_optional("LOG_LEVEL", "INFO"),
    )
