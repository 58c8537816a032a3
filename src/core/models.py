"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any ledger-specific types (solders pubkeys, RPC responses).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, List, Literal, Optional, Union

import base58

IDENTITY_LEN = 32

AccountKind = Literal["thread", "channel"]
ACCOUNT_KINDS: tuple[str, ...] = ("thread", "channel")


@dataclass(frozen=True)
class Identity:
    """A 32-byte public identifier, used both as an address and as a signer."""

    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) != IDENTITY_LEN:
            raise ValueError(f"Identity must be {IDENTITY_LEN} bytes, got {len(self.raw)}")

    @classmethod
    def from_base58(cls, value: str) -> "Identity":
        try:
            raw = base58.b58decode(value.strip())
        except ValueError as exc:
            raise ValueError(f"Invalid base58 identity: {value!r}") from exc
        return cls(raw)

    def to_base58(self) -> str:
        return base58.b58encode(self.raw).decode("ascii")

    def __str__(self) -> str:
        return self.to_base58()


@dataclass(frozen=True)
class ThreadRecord:
    """Decoded direct-message thread account."""

    kind: ClassVar[str] = "thread"

    participant_a: Identity
    participant_b: Identity
    thread_id: bytes
    message_count: int

    @property
    def counter(self) -> int:
        return self.message_count


@dataclass(frozen=True)
class ChannelRecord:
    """Decoded broadcast channel account."""

    kind: ClassVar[str] = "channel"

    owner: Identity
    name: str
    broadcast_count: int

    @property
    def counter(self) -> int:
        return self.broadcast_count


AccountRecord = Union[ThreadRecord, ChannelRecord]


@dataclass(frozen=True)
class MessageRecord:
    """One decrypted message, ordered by its on-chain index."""

    index: int
    sender: Identity
    plaintext: str
    observed_at: Optional[datetime]
    provenance_ref: str


@dataclass(frozen=True)
class TransactionRef:
    """One entry of an address's newest-first transaction history."""

    signature: str
    slot: int
    failed: bool = False
    block_time: Optional[datetime] = None


@dataclass(frozen=True)
class CompiledInstruction:
    """An instruction with its program and account indices already resolved."""

    program: Identity
    accounts: List[Identity]
    data: bytes


@dataclass(frozen=True)
class TransactionContents:
    """Ledger-agnostic view of a fetched transaction."""

    signature: str
    slot: int
    block_time: Optional[datetime]
    instructions: List[CompiledInstruction]
    failed: bool = False


@dataclass(frozen=True)
class AccountChange:
    """A single account-change notification. Empty data means the account was closed."""

    data: bytes
    slot: int


@dataclass
class ReconstructionResult:
    """Ordered messages plus counts of everything the scan had to skip."""

    messages: List[MessageRecord] = field(default_factory=list)
    skipped_refs: int = 0
    failed_refs: int = 0
    malformed_payloads: int = 0
    decrypt_failures: List[int] = field(default_factory=list)
    duplicate_indices: List[int] = field(default_factory=list)

    @property
    def problem_count(self) -> int:
        return (
            self.failed_refs
            + self.malformed_payloads
            + len(self.decrypt_failures)
            + len(self.duplicate_indices)
        )
