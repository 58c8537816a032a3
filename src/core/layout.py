"""Account layout decoder (core domain).

Both account kinds start with an 8-byte discriminator that is skipped.

Thread:  [disc:8][participant_a:32][participant_b:32][thread_id:32][message_count:u32]
Channel: [disc:8][owner:32][name_len:u32][name:<=32][...][broadcast_count:u32 @ 76]

The channel counter sits at a fixed offset because the name field reserves
its full 32 bytes. Do not derive it from the actual name length.
"""

from __future__ import annotations

import struct

from core.errors import MalformedAccount
from core.models import AccountRecord, ChannelRecord, Identity, ThreadRecord

DISCRIMINATOR_LEN = 8

THREAD_PARTICIPANT_A_OFFSET = 8
THREAD_PARTICIPANT_B_OFFSET = 40
THREAD_ID_OFFSET = 72
THREAD_COUNT_OFFSET = 104
THREAD_MIN_LEN = 108

CHANNEL_OWNER_OFFSET = 8
CHANNEL_NAME_LEN_OFFSET = 40
CHANNEL_NAME_OFFSET = 44
CHANNEL_NAME_MAX = 32
CHANNEL_COUNT_OFFSET = 76

COUNT_OFFSETS = {
    "thread": THREAD_COUNT_OFFSET,
    "channel": CHANNEL_COUNT_OFFSET,
}

_U32 = struct.Struct("<I")


def _read_u32(data: bytes, offset: int, what: str) -> int:
    if offset < 0 or offset + _U32.size > len(data):
        raise MalformedAccount(
            f"{what} at offset {offset} is out of bounds ({len(data)} bytes)"
        )
    return _U32.unpack_from(data, offset)[0]


def _read_identity(data: bytes, offset: int, what: str) -> Identity:
    end = offset + 32
    if end > len(data):
        raise MalformedAccount(f"{what} at offset {offset} is out of bounds ({len(data)} bytes)")
    return Identity(bytes(data[offset:end]))


def read_counter(data: bytes, kind: str) -> int:
    """Read only the running message counter, without decoding identities."""

    try:
        offset = COUNT_OFFSETS[kind]
    except KeyError:
        raise ValueError(f"Unsupported account kind: {kind}") from None
    return _read_u32(data, offset, f"{kind} counter")


def decode_thread(data: bytes) -> ThreadRecord:
    if len(data) < THREAD_MIN_LEN:
        raise MalformedAccount(
            f"Thread account too short: {len(data)} bytes, need {THREAD_MIN_LEN}"
        )
    return ThreadRecord(
        participant_a=_read_identity(data, THREAD_PARTICIPANT_A_OFFSET, "participant_a"),
        participant_b=_read_identity(data, THREAD_PARTICIPANT_B_OFFSET, "participant_b"),
        thread_id=bytes(data[THREAD_ID_OFFSET:THREAD_COUNT_OFFSET]),
        message_count=_read_u32(data, THREAD_COUNT_OFFSET, "message_count"),
    )


def decode_channel(data: bytes) -> ChannelRecord:
    owner = _read_identity(data, CHANNEL_OWNER_OFFSET, "owner")
    name_len = _read_u32(data, CHANNEL_NAME_LEN_OFFSET, "name length")
    if name_len > CHANNEL_NAME_MAX:
        raise MalformedAccount(f"Channel name length {name_len} exceeds {CHANNEL_NAME_MAX}")

    min_len = CHANNEL_NAME_OFFSET + name_len + _U32.size
    if len(data) < min_len:
        raise MalformedAccount(f"Channel account too short: {len(data)} bytes, need {min_len}")

    raw_name = bytes(data[CHANNEL_NAME_OFFSET : CHANNEL_NAME_OFFSET + name_len])
    try:
        name = raw_name.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedAccount(f"Channel name is not valid UTF-8: {raw_name!r}") from exc

    return ChannelRecord(
        owner=owner,
        name=name,
        broadcast_count=_read_u32(data, CHANNEL_COUNT_OFFSET, "broadcast_count"),
    )


def decode_account(data: bytes, kind: str) -> AccountRecord:
    """Decode raw account bytes into a typed record for the expected kind."""

    if kind == "thread":
        return decode_thread(data)
    if kind == "channel":
        return decode_channel(data)
    raise ValueError(f"Unsupported account kind: {kind}")
