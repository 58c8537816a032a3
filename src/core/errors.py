"""Domain errors raised by the core.

Only account-level errors abort an operation. Per-record and per-transaction
errors are caught inside the reconstructor and turned into counters.
"""

from __future__ import annotations

from typing import Optional


class SolscopeError(Exception):
    """Base class for all solscope errors."""


class AccountNotFound(SolscopeError):
    """The account does not exist (never created, or already closed)."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Account not found: {address}")
        self.address = address


class MalformedAccount(SolscopeError):
    """Account bytes do not match the expected layout."""


class MalformedPayload(SolscopeError):
    """An append instruction payload does not match the wire format."""


class DecryptionFailed(SolscopeError):
    """Wrong secret or corrupted ciphertext for a single message."""

    def __init__(self, message: str = "Decryption failed", index: Optional[int] = None) -> None:
        super().__init__(message)
        self.index = index


class TransactionFetchFailed(SolscopeError):
    """A single transaction could not be fetched."""

    def __init__(self, signature: str, reason: str) -> None:
        super().__init__(f"Failed to fetch transaction {signature}: {reason}")
        self.signature = signature


class SubscriptionSetupFailed(SolscopeError):
    """The live-tail subscription could not be established."""


class StreamLost(SolscopeError):
    """The live-tail notification stream dropped after it was established."""
