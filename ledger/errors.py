"""
Error taxonomy for external ledger services.

Everything a provider can do wrong maps onto one of these so callers can
decide between rotate, skip-this-tick and degrade without string matching.
"""

from __future__ import annotations


class ProviderError(Exception):
    """A ledger data provider call failed."""

    def __init__(self, message: str, endpoint: str = "") -> None:
        super().__init__(message)
        self.endpoint = endpoint


class RateLimitedError(ProviderError):
    """Provider answered 429 or a JSON-RPC rate-limit error."""


class MalformedResponseError(ProviderError):
    """Response body was not JSON or did not have the expected shape."""


class AccountNotFoundError(ProviderError):
    """The queried account does not exist on the ledger (yet)."""


class ParseServiceError(Exception):
    """The enhanced transaction parsing service was unreachable or failed."""
