from __future__ import annotations

import struct

import pytest

from core.instructions import OPERATION_TAGS, append_tag, build_append_payload, matching_instructions
from core.models import CompiledInstruction, Identity, TransactionContents

PROGRAM = Identity(b"\x09" * 32)
OTHER_PROGRAM = Identity(b"\x08" * 32)
THREAD = Identity(b"\x01" * 32)
SENDER = Identity(b"\x02" * 32)


def _tx(*instructions: CompiledInstruction) -> TransactionContents:
    return TransactionContents(signature="sig", slot=1, block_time=None, instructions=list(instructions))


def _append(data: bytes, program: Identity = PROGRAM, accounts=None) -> CompiledInstruction:
    return CompiledInstruction(
        program=program,
        accounts=[THREAD, SENDER] if accounts is None else accounts,
        data=data,
    )


def test_append_tags_per_kind() -> None:
    assert append_tag("thread") == bytes([57, 40, 34, 178, 189, 10, 65, 26])
    assert append_tag("channel") == bytes([233, 241, 72, 77, 151, 147, 32, 89])
    assert len(set(OPERATION_TAGS.values())) == 7
    with pytest.raises(ValueError):
        append_tag("group")


def test_build_append_payload_layout() -> None:
    tag = append_tag("thread")
    payload = build_append_payload(tag, 3, b"abcd")
    assert payload[:8] == tag
    assert struct.unpack_from("<II", payload, 8) == (3, 4)
    assert payload[16:] == b"abcd"


def test_yields_payload_and_sender_at_index_one() -> None:
    payload = build_append_payload(append_tag("thread"), 0, b"x" * 16)
    matches = list(matching_instructions(_tx(_append(payload)), PROGRAM, append_tag("thread")))
    assert matches == [(payload, SENDER)]


def test_skips_other_programs() -> None:
    payload = build_append_payload(append_tag("thread"), 0, b"x" * 16)
    tx = _tx(_append(payload, program=OTHER_PROGRAM))
    assert list(matching_instructions(tx, PROGRAM, append_tag("thread"))) == []


def test_skips_other_operation_tags() -> None:
    broadcast = build_append_payload(append_tag("channel"), 0, b"x" * 16)
    init = OPERATION_TAGS["initialize_thread"] + b"\x00" * 32
    tx = _tx(_append(broadcast), _append(init))
    assert list(matching_instructions(tx, PROGRAM, append_tag("thread"))) == []


def test_skips_payload_shorter_than_tag() -> None:
    tx = _tx(_append(append_tag("thread")[:5]))
    assert list(matching_instructions(tx, PROGRAM, append_tag("thread"))) == []


def test_skips_instruction_without_sender() -> None:
    payload = build_append_payload(append_tag("thread"), 0, b"x" * 16)
    tx = _tx(_append(payload, accounts=[THREAD]))
    assert list(matching_instructions(tx, PROGRAM, append_tag("thread"))) == []


def test_keeps_native_instruction_order() -> None:
    tag = append_tag("thread")
    first = build_append_payload(tag, 4, b"a" * 16)
    second = build_append_payload(tag, 2, b"b" * 16)
    other_sender = Identity(b"\x03" * 32)
    tx = _tx(_append(first), _append(second, accounts=[THREAD, other_sender]))

    matches = list(matching_instructions(tx, PROGRAM, tag))

    assert matches == [(first, SENDER), (second, other_sender)]
