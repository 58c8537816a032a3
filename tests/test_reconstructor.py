from __future__ import annotations

import asyncio
import itertools
import struct
from datetime import datetime, timezone
from typing import Optional

from core.config import ScanConfig
from core.errors import DecryptionFailed, TransactionFetchFailed
from core.instructions import append_tag, build_append_payload
from core.models import CompiledInstruction, Identity, TransactionContents, TransactionRef
from core.reconstructor import HistoryReconstructor

PROGRAM = Identity(b"\x09" * 32)
THREAD = Identity(b"\x01" * 32)
ALICE = Identity(b"\x02" * 32)
BOB = Identity(b"\x03" * 32)
SECRET = "s3cret"


class FakeCipher:
    def __init__(self) -> None:
        self.decrypted: list[bytes] = []

    def encrypt(self, plaintext: str, secret: str) -> bytes:
        return f"{secret}|{plaintext}".encode("utf-8")

    def decrypt(self, ciphertext: bytes, secret: str) -> str:
        self.decrypted.append(ciphertext)
        prefix = f"{secret}|".encode("utf-8")
        if not ciphertext.startswith(prefix):
            raise DecryptionFailed("wrong secret")
        return ciphertext[len(prefix):].decode("utf-8")


class FakeLedger:
    def __init__(self) -> None:
        self.refs: list[TransactionRef] = []
        self.transactions: dict[str, TransactionContents] = {}
        self.failing: set[str] = set()
        self.fetched: list[str] = []
        self.limits: list[int] = []

    def add(self, transaction: TransactionContents, failed_ref: bool = False) -> None:
        """Append in listing order; callers add newest first."""

        self.refs.append(TransactionRef(signature=transaction.signature, slot=transaction.slot, failed=failed_ref))
        self.transactions[transaction.signature] = transaction

    async def list_transaction_refs(self, address: Identity, limit: int) -> list[TransactionRef]:
        self.limits.append(limit)
        return self.refs[:limit]

    async def get_transaction(self, signature: str) -> Optional[TransactionContents]:
        self.fetched.append(signature)
        if signature in self.failing:
            raise TransactionFetchFailed(signature, "timeout")
        return self.transactions.get(signature)


def _append_tx(
    signature: str,
    slot: int,
    index: int,
    text: str,
    *,
    sender: Identity = ALICE,
    secret: str = SECRET,
    kind: str = "thread",
    failed: bool = False,
) -> TransactionContents:
    payload = build_append_payload(append_tag(kind), index, FakeCipher().encrypt(text, secret))
    return TransactionContents(
        signature=signature,
        slot=slot,
        block_time=datetime.fromtimestamp(1700000000 + slot, tz=timezone.utc),
        instructions=[CompiledInstruction(program=PROGRAM, accounts=[THREAD, sender], data=payload)],
        failed=failed,
    )


def _reconstruct(ledger: FakeLedger, cipher=None, min_index: int = 0, kind: str = "thread", **config):
    reconstructor = HistoryReconstructor(ledger, cipher or FakeCipher(), PROGRAM, ScanConfig(**config))
    return asyncio.run(reconstructor.reconstruct(THREAD, kind, SECRET, min_index=min_index))


def test_sorts_by_index_for_every_arrival_order() -> None:
    for order in itertools.permutations(range(4)):
        ledger = FakeLedger()
        for position, index in enumerate(order):
            ledger.add(_append_tx(f"sig-{index}", slot=100 - position, index=index, text=f"m{index}"))

        result = _reconstruct(ledger)

        assert [message.index for message in result.messages] == [0, 1, 2, 3]
        assert [message.plaintext for message in result.messages] == ["m0", "m1", "m2", "m3"]


def test_record_fields_come_from_transaction() -> None:
    ledger = FakeLedger()
    ledger.add(_append_tx("sig-0", slot=7, index=0, text="hi", sender=BOB))

    [message] = _reconstruct(ledger).messages

    assert message.sender == BOB
    assert message.provenance_ref == "sig-0"
    assert message.observed_at == datetime.fromtimestamp(1700000007, tz=timezone.utc)


def test_min_index_filters_before_decrypting() -> None:
    ledger = FakeLedger()
    for index in reversed(range(6)):
        ledger.add(_append_tx(f"sig-{index}", slot=index, index=index, text=f"m{index}"))
    cipher = FakeCipher()

    result = _reconstruct(ledger, cipher=cipher, min_index=3)

    assert [message.index for message in result.messages] == [3, 4, 5]
    assert len(cipher.decrypted) == 3


def test_incremental_scan_matches_filtered_full_scan() -> None:
    ledger = FakeLedger()
    for index in (4, 1, 6, 0, 3, 5, 2):
        sender = ALICE if index % 2 else BOB
        ledger.add(_append_tx(f"sig-{index}", slot=10 + index, index=index, text=f"m{index}", sender=sender))

    full = _reconstruct(ledger).messages
    incremental = _reconstruct(ledger, min_index=4).messages

    def key(message):
        return (message.index, message.sender, message.plaintext)

    assert [key(m) for m in incremental] == [key(m) for m in full if m.index >= 4]


def test_fetch_failure_is_contained() -> None:
    ledger = FakeLedger()
    for index in reversed(range(3)):
        ledger.add(_append_tx(f"sig-{index}", slot=index, index=index, text=f"m{index}"))
    ledger.failing.add("sig-1")

    result = _reconstruct(ledger)

    assert [message.index for message in result.messages] == [0, 2]
    assert result.failed_refs == 1


def test_missing_transaction_is_skipped() -> None:
    ledger = FakeLedger()
    ledger.add(_append_tx("sig-0", slot=1, index=0, text="m0"))
    ledger.refs.insert(0, TransactionRef(signature="gone", slot=2))

    result = _reconstruct(ledger)

    assert [message.index for message in result.messages] == [0]
    assert result.skipped_refs == 1


def test_failed_refs_are_not_fetched() -> None:
    ledger = FakeLedger()
    ledger.add(_append_tx("retry", slot=3, index=1, text="rejected"), failed_ref=True)
    ledger.add(_append_tx("sig-1", slot=2, index=1, text="m1"))
    ledger.add(_append_tx("sig-0", slot=1, index=0, text="m0"))

    result = _reconstruct(ledger)

    assert "retry" not in ledger.fetched
    assert [message.plaintext for message in result.messages] == ["m0", "m1"]
    assert result.skipped_refs == 1
    assert result.duplicate_indices == []


def test_failed_transactions_are_skipped_after_fetch() -> None:
    ledger = FakeLedger()
    ledger.add(_append_tx("retry", slot=3, index=0, text="rejected", failed=True))
    ledger.add(_append_tx("sig-0", slot=1, index=0, text="m0"))

    result = _reconstruct(ledger)

    assert [message.plaintext for message in result.messages] == ["m0"]
    assert result.skipped_refs == 1


def test_decrypt_failure_is_counted_and_skipped() -> None:
    ledger = FakeLedger()
    ledger.add(_append_tx("sig-2", slot=3, index=2, text="m2"))
    ledger.add(_append_tx("sig-1", slot=2, index=1, text="other key", secret="nope"))
    ledger.add(_append_tx("sig-0", slot=1, index=0, text="m0"))

    result = _reconstruct(ledger)

    assert [message.index for message in result.messages] == [0, 2]
    assert result.decrypt_failures == [1]


def test_index_recovered_elsewhere_is_not_a_decrypt_failure() -> None:
    ledger = FakeLedger()
    ledger.add(_append_tx("sig-good", slot=4, index=1, text="m1"))
    ledger.add(_append_tx("sig-bad", slot=3, index=1, text="other key", secret="nope"))
    ledger.add(_append_tx("sig-0", slot=1, index=0, text="m0"))

    result = _reconstruct(ledger)

    assert [message.plaintext for message in result.messages] == ["m0", "m1"]
    assert result.decrypt_failures == []


def test_malformed_payload_is_counted() -> None:
    ledger = FakeLedger()
    bad = append_tag("thread") + struct.pack("<II", 1, 500) + b"short"
    ledger.add(
        TransactionContents(
            signature="bad",
            slot=2,
            block_time=None,
            instructions=[CompiledInstruction(program=PROGRAM, accounts=[THREAD, ALICE], data=bad)],
        )
    )
    ledger.add(_append_tx("sig-0", slot=1, index=0, text="m0"))

    result = _reconstruct(ledger)

    assert [message.index for message in result.messages] == [0]
    assert result.malformed_payloads == 1


def test_duplicate_index_keeps_earliest_transaction() -> None:
    ledger = FakeLedger()
    ledger.add(_append_tx("sig-late", slot=12, index=1, text="resubmitted"))
    ledger.add(_append_tx("sig-early", slot=10, index=1, text="original"))
    ledger.add(_append_tx("sig-0", slot=5, index=0, text="m0"))

    result = _reconstruct(ledger)

    assert [message.plaintext for message in result.messages] == ["m0", "original"]
    assert result.messages[1].provenance_ref == "sig-early"
    assert result.duplicate_indices == [1]


def test_duplicate_index_in_same_slot_keeps_older_listing() -> None:
    ledger = FakeLedger()
    ledger.add(_append_tx("newer", slot=10, index=0, text="second"))
    ledger.add(_append_tx("older", slot=10, index=0, text="first"))

    result = _reconstruct(ledger, fetch_concurrency=1)

    assert [message.provenance_ref for message in result.messages] == ["older"]


def test_only_append_tag_for_kind_is_used() -> None:
    ledger = FakeLedger()
    ledger.add(_append_tx("broadcast", slot=2, index=0, text="wrong kind", kind="channel"))
    ledger.add(_append_tx("message", slot=1, index=0, text="right kind"))

    thread_result = _reconstruct(ledger, kind="thread")
    channel_result = _reconstruct(ledger, kind="channel")

    assert [message.plaintext for message in thread_result.messages] == ["right kind"]
    assert [message.plaintext for message in channel_result.messages] == ["wrong kind"]


def test_signature_limit_is_clamped_to_protocol_maximum() -> None:
    ledger = FakeLedger()
    _reconstruct(ledger, signature_limit=5000)
    _reconstruct(ledger, signature_limit=20)
    assert ledger.limits == [1000, 20]
