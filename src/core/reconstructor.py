"""History reconstruction from an account's transaction log.

The reconstructor enforces a strict order:
1) List up to `signature_limit` transaction references, newest first
2) Skip references the ledger already reports as failed
3) Fetch each remaining transaction (bounded concurrency, per-ref failures contained)
4) Filter append instructions for the account kind and parse their headers
5) Drop indices below `min_index`, decrypt the rest
6) Resolve duplicate indices, then sort by index once every reference is done

Log order is reverse-chronological and says nothing about message index, so
step 6 is the only place ordering is established.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.config import ScanConfig
from core.errors import DecryptionFailed, MalformedPayload, TransactionFetchFailed
from core.extractor import decrypt_message, parse_append_payload
from core.instructions import append_tag, matching_instructions
from core.models import Identity, MessageRecord, ReconstructionResult, TransactionRef
from core.ports import CipherPort, LedgerPort

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Candidate:
    slot: int
    position: int
    record: MessageRecord

    def precedence(self) -> tuple[int, int]:
        # Earliest slot wins; on equal slots the entry listed later (older) wins.
        return (self.slot, -self.position)


@dataclass
class _RefOutcome:
    candidates: List[_Candidate] = field(default_factory=list)
    fetch_failed: bool = False
    skipped: bool = False
    malformed: int = 0
    decrypt_failures: List[int] = field(default_factory=list)


class HistoryReconstructor:
    """Rebuilds the ordered, decrypted message list of a thread or channel."""

    def __init__(
        self,
        ledger: LedgerPort,
        cipher: CipherPort,
        program: Identity,
        scan_config: Optional[ScanConfig] = None,
    ) -> None:
        self._ledger = ledger
        self._cipher = cipher
        self._program = program
        self._scan = scan_config or ScanConfig()

    async def reconstruct(
        self,
        address: Identity,
        kind: str,
        secret: str,
        min_index: int = 0,
    ) -> ReconstructionResult:
        """Return every recoverable message with index >= min_index, sorted by index."""

        tag = append_tag(kind)
        refs = await self._ledger.list_transaction_refs(address, self._scan.effective_limit())
        LOGGER.debug("Scanning %s transaction(s) for %s %s", len(refs), kind, address)

        result = ReconstructionResult()
        semaphore = asyncio.Semaphore(max(1, self._scan.fetch_concurrency))
        pending = []
        for position, ref in enumerate(refs):
            if ref.failed and self._scan.skip_failed_transactions:
                result.skipped_refs += 1
                continue
            pending.append(self._scan_ref(position, ref, tag, secret, min_index, semaphore))

        outcomes = await asyncio.gather(*pending)

        chosen: Dict[int, _Candidate] = {}
        for outcome in outcomes:
            if outcome.fetch_failed:
                result.failed_refs += 1
            if outcome.skipped:
                result.skipped_refs += 1
            result.malformed_payloads += outcome.malformed
            result.decrypt_failures.extend(outcome.decrypt_failures)
            for candidate in outcome.candidates:
                index = candidate.record.index
                current = chosen.get(index)
                if current is None:
                    chosen[index] = candidate
                    continue
                result.duplicate_indices.append(index)
                LOGGER.warning(
                    "Duplicate index %s in %s and %s; keeping the earlier transaction",
                    index,
                    current.record.provenance_ref,
                    candidate.record.provenance_ref,
                )
                if candidate.precedence() < current.precedence():
                    chosen[index] = candidate

        result.messages = [chosen[index].record for index in sorted(chosen)]
        # An index recovered from another transaction is not a failure.
        result.decrypt_failures = sorted(
            index for index in result.decrypt_failures if index not in chosen
        )
        result.duplicate_indices.sort()

        LOGGER.info(
            "Reconstructed %s message(s) for %s: refs=%s, skipped=%s, failed=%s, "
            "malformed=%s, undecryptable=%s, duplicates=%s",
            len(result.messages),
            address,
            len(refs),
            result.skipped_refs,
            result.failed_refs,
            result.malformed_payloads,
            len(result.decrypt_failures),
            len(result.duplicate_indices),
        )
        return result

    async def _scan_ref(
        self,
        position: int,
        ref: TransactionRef,
        tag: bytes,
        secret: str,
        min_index: int,
        semaphore: asyncio.Semaphore,
    ) -> _RefOutcome:
        outcome = _RefOutcome()
        async with semaphore:
            try:
                transaction = await self._ledger.get_transaction(ref.signature)
            except TransactionFetchFailed as exc:
                LOGGER.warning("%s", exc)
                outcome.fetch_failed = True
                return outcome

        if transaction is None:
            LOGGER.info("Transaction %s not found, skipping", ref.signature)
            outcome.skipped = True
            return outcome
        if transaction.failed and self._scan.skip_failed_transactions:
            outcome.skipped = True
            return outcome

        observed_at = transaction.block_time or ref.block_time
        for payload, sender in matching_instructions(transaction, self._program, tag):
            try:
                index, ciphertext = parse_append_payload(payload)
            except MalformedPayload as exc:
                LOGGER.warning("Malformed payload in %s: %s", ref.signature, exc)
                outcome.malformed += 1
                continue

            # Filter before decrypting so incremental scans stay cheap.
            if index < min_index:
                continue

            try:
                record = decrypt_message(
                    index,
                    ciphertext,
                    sender,
                    secret,
                    self._cipher,
                    provenance_ref=ref.signature,
                    observed_at=observed_at,
                )
            except DecryptionFailed:
                LOGGER.warning("Could not decrypt message %s in %s", index, ref.signature)
                outcome.decrypt_failures.append(index)
                continue

            outcome.candidates.append(_Candidate(slot=transaction.slot, position=position, record=record))
        return outcome
