"""Instruction filtering for append operations (core domain)."""

from __future__ import annotations

import logging
import struct
from typing import Iterator, Tuple

from core.models import Identity, TransactionContents

LOGGER = logging.getLogger(__name__)

TAG_LEN = 8

# Anchor instruction sighashes of the messaging program.
OPERATION_TAGS: dict[str, bytes] = {
    "initialize_thread": bytes.fromhex("cf4e5bb957f48e0b"),
    "send_message": bytes.fromhex("392822b2bd0a411a"),
    "initialize_channel": bytes.fromhex("e85bb1d47a5ee3fa"),
    "send_broadcast": bytes.fromhex("e9f1484d97932059"),
    "subscribe_channel": bytes.fromhex("ca978c2427df6cb1"),
    "close_thread": bytes.fromhex("35e71031f7656d0b"),
    "close_channel": bytes.fromhex("006824014200679d"),
}

APPEND_OPERATIONS = {
    "thread": "send_message",
    "channel": "send_broadcast",
}

# Account index 0 is always the target account, index 1 the signing sender.
SENDER_ACCOUNT_INDEX = 1

_HEADER = struct.Struct("<II")


def append_tag(kind: str) -> bytes:
    """Return the operation tag for appends to the given account kind."""

    try:
        return OPERATION_TAGS[APPEND_OPERATIONS[kind]]
    except KeyError:
        raise ValueError(f"Unsupported account kind: {kind}") from None


def build_append_payload(tag: bytes, index: int, ciphertext: bytes) -> bytes:
    """Encode an append payload: tag, u32 index, u32 length, ciphertext."""

    if len(tag) != TAG_LEN:
        raise ValueError(f"Operation tag must be {TAG_LEN} bytes")
    return tag + _HEADER.pack(index, len(ciphertext)) + ciphertext


def matching_instructions(
    transaction: TransactionContents,
    program: Identity,
    tag: bytes,
) -> Iterator[Tuple[bytes, Identity]]:
    """Yield (payload, sender) for each instruction calling `program` with `tag`."""

    for position, instruction in enumerate(transaction.instructions):
        if instruction.program != program:
            continue
        data = instruction.data
        if len(data) < len(tag) or data[: len(tag)] != tag:
            continue
        if len(instruction.accounts) <= SENDER_ACCOUNT_INDEX:
            LOGGER.warning(
                "Append instruction %s in %s lists %s account(s), no sender",
                position,
                transaction.signature,
                len(instruction.accounts),
            )
            continue
        yield bytes(data), instruction.accounts[SENDER_ACCOUNT_INDEX]
