"""Solana-to-core mapping adapter.

This keeps solders-specific types out of the core reconstructor.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from core.errors import TransactionFetchFailed
from core.models import CompiledInstruction, Identity, TransactionContents, TransactionRef

LOGGER = logging.getLogger(__name__)


def identity_from_pubkey(pubkey: Pubkey) -> Identity:
    return Identity(bytes(pubkey))


def pubkey_from_identity(identity: Identity) -> Pubkey:
    return Pubkey.from_bytes(identity.raw)


def block_time_to_datetime(block_time: Optional[int]) -> Optional[datetime]:
    if block_time is None:
        return None
    return datetime.fromtimestamp(block_time, tz=timezone.utc)


def map_signature_info(info: Any) -> TransactionRef:
    """Map one getSignaturesForAddress entry to a TransactionRef."""

    return TransactionRef(
        signature=str(info.signature),
        slot=info.slot,
        failed=info.err is not None,
        block_time=block_time_to_datetime(info.block_time),
    )


def _resolve_keys(message: Any, loaded_addresses: Any = None) -> List[Identity]:
    # v0 messages index into static keys, then lookup-table writable, then readonly.
    keys = [identity_from_pubkey(key) for key in message.account_keys]
    if loaded_addresses is not None:
        keys.extend(identity_from_pubkey(key) for key in loaded_addresses.writable)
        keys.extend(identity_from_pubkey(key) for key in loaded_addresses.readonly)
    return keys


def map_message(
    signature: str,
    slot: int,
    block_time: Optional[int],
    message: Any,
    loaded_addresses: Any = None,
    failed: bool = False,
) -> TransactionContents:
    """Build TransactionContents from a solders Message or MessageV0."""

    keys = _resolve_keys(message, loaded_addresses)
    instructions: List[CompiledInstruction] = []
    for position, compiled in enumerate(message.instructions):
        indices = [compiled.program_id_index, *compiled.accounts]
        if any(index >= len(keys) for index in indices):
            # An unresolved index would shift the sender position, so drop the instruction.
            LOGGER.debug("Instruction %s in %s references unresolved accounts", position, signature)
            continue
        instructions.append(
            CompiledInstruction(
                program=keys[compiled.program_id_index],
                accounts=[keys[index] for index in compiled.accounts],
                data=bytes(compiled.data),
            )
        )

    return TransactionContents(
        signature=signature,
        slot=slot,
        block_time=block_time_to_datetime(block_time),
        instructions=instructions,
        failed=failed,
    )


def map_confirmed_transaction(signature: str, confirmed: Any) -> TransactionContents:
    """Map an EncodedConfirmedTransactionWithStatusMeta fetched with base64 encoding."""

    encoded = confirmed.transaction
    transaction = encoded.transaction
    if not isinstance(transaction, VersionedTransaction):
        raise TransactionFetchFailed(signature, "transaction was not returned in binary encoding")

    meta = encoded.meta
    failed = meta is not None and meta.err is not None
    loaded_addresses = getattr(meta, "loaded_addresses", None) if meta is not None else None
    return map_message(
        signature,
        confirmed.slot,
        confirmed.block_time,
        transaction.message,
        loaded_addresses=loaded_addresses,
        failed=failed,
    )
