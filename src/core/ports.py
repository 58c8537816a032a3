"""Ports (interfaces) used by the core.

Ports define the minimal contracts for the ledger, cipher, and output
adapters so that the core can be reused with different backends and tested
with in-memory fakes.
"""

from __future__ import annotations

from typing import AsyncIterator, List, Optional, Protocol

from core.models import AccountChange, Identity, MessageRecord, TransactionContents, TransactionRef


class AccountSubscription(Protocol):
    """An open account-change stream."""

    subscription_id: int

    def __aiter__(self) -> AsyncIterator[AccountChange]:
        ...


class LedgerPort(Protocol):
    """Read operations required from the ledger."""

    async def get_account_bytes(self, address: Identity) -> bytes:
        """Return raw account data or raise AccountNotFound."""
        ...

    async def list_transaction_refs(self, address: Identity, limit: int) -> List[TransactionRef]:
        """Return up to `limit` references, newest first."""
        ...

    async def get_transaction(self, signature: str) -> Optional[TransactionContents]:
        """Return the transaction, None if unknown, or raise TransactionFetchFailed."""
        ...

    async def subscribe_account_changes(self, address: Identity) -> AccountSubscription:
        ...

    async def unsubscribe(self, subscription: AccountSubscription) -> None:
        ...


class CipherPort(Protocol):
    """Symmetric cipher used for message content."""

    def encrypt(self, plaintext: str, secret: str) -> bytes:
        ...

    def decrypt(self, ciphertext: bytes, secret: str) -> str:
        """Return plaintext or raise DecryptionFailed."""
        ...


class MessageSinkPort(Protocol):
    """Where the live tail delivers new messages."""

    async def deliver(self, kind: str, message: MessageRecord) -> None:
        ...

    async def report_missing(self, kind: str, previous: int, current: int) -> None:
        ...
