"""Program-derived addresses for threads, channels and subscriptions."""

from __future__ import annotations

from solders.pubkey import Pubkey

from adapters.solana_mapper import identity_from_pubkey, pubkey_from_identity
from core.layout import CHANNEL_NAME_MAX
from core.models import Identity

THREAD_SEED = b"message_thread"
CHANNEL_SEED = b"broadcast_channel"
SUBSCRIPTION_SEED = b"subscription"


def _find(seeds: list[bytes], program: Identity) -> Identity:
    pda, _bump = Pubkey.find_program_address(seeds, pubkey_from_identity(program))
    return identity_from_pubkey(pda)


def derive_thread_address(
    program: Identity,
    participant_a: Identity,
    participant_b: Identity,
    thread_id: bytes,
) -> Identity:
    if len(thread_id) != 32:
        raise ValueError(f"Thread id must be 32 bytes, got {len(thread_id)}")
    return _find([THREAD_SEED, participant_a.raw, participant_b.raw, thread_id], program)


def derive_channel_address(program: Identity, owner: Identity, name: str) -> Identity:
    raw_name = name.encode("utf-8")
    if len(raw_name) > CHANNEL_NAME_MAX:
        raise ValueError(f"Channel name exceeds {CHANNEL_NAME_MAX} bytes")
    return _find([CHANNEL_SEED, owner.raw, raw_name], program)


def derive_subscription_address(program: Identity, channel: Identity, subscriber: Identity) -> Identity:
    return _find([SUBSCRIPTION_SEED, channel.raw, subscriber.raw], program)
