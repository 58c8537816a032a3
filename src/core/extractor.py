"""Append payload decoding and decryption (core domain)."""

from __future__ import annotations

import struct
from datetime import datetime
from typing import Optional, Tuple

from core.errors import DecryptionFailed, MalformedPayload
from core.instructions import TAG_LEN
from core.models import Identity, MessageRecord
from core.ports import CipherPort

_HEADER = struct.Struct("<II")
HEADER_END = TAG_LEN + _HEADER.size


def parse_append_payload(payload: bytes) -> Tuple[int, bytes]:
    """Return (index, ciphertext) from a tagged append payload."""

    if len(payload) < HEADER_END:
        raise MalformedPayload(
            f"Payload too short for header: {len(payload)} bytes, need {HEADER_END}"
        )
    index, content_length = _HEADER.unpack_from(payload, TAG_LEN)
    end = HEADER_END + content_length
    if len(payload) < end:
        raise MalformedPayload(
            f"Payload for index {index} declares {content_length} content bytes, "
            f"only {len(payload) - HEADER_END} present"
        )
    return index, bytes(payload[HEADER_END:end])


def extract_message(
    payload: bytes,
    sender: Identity,
    secret: str,
    cipher: CipherPort,
    provenance_ref: str,
    observed_at: Optional[datetime] = None,
) -> MessageRecord:
    """Decode and decrypt one append payload into a MessageRecord."""

    index, ciphertext = parse_append_payload(payload)
    return decrypt_message(index, ciphertext, sender, secret, cipher, provenance_ref, observed_at)


def decrypt_message(
    index: int,
    ciphertext: bytes,
    sender: Identity,
    secret: str,
    cipher: CipherPort,
    provenance_ref: str,
    observed_at: Optional[datetime] = None,
) -> MessageRecord:
    try:
        plaintext = cipher.decrypt(ciphertext, secret)
    except DecryptionFailed as exc:
        raise DecryptionFailed(str(exc), index=index) from exc
    return MessageRecord(
        index=index,
        sender=sender,
        plaintext=plaintext,
        observed_at=observed_at,
        provenance_ref=provenance_ref,
    )
