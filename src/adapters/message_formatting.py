"""Shared terminal formatting helpers.

Keeping formatting here prevents drift between the `read` and `listen`
commands and keeps output consistent regardless of how it is rendered.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from core.models import AccountRecord, ChannelRecord, MessageRecord, ReconstructionResult

LABELS = {
    "thread": ("Message", "Messages"),
    "channel": ("Broadcast", "Broadcasts"),
}


def format_timestamp(moment: Optional[datetime]) -> str:
    if moment is None:
        return "Unknown"
    return moment.astimezone().strftime("%H:%M:%S %d-%m-%Y")


def format_message(kind: str, message: MessageRecord) -> List[str]:
    """Return the header, sender and body lines for one message."""

    sender = str(message.sender)
    if kind == "channel":
        sender = f"{sender} (Owner)"
    return [
        f"[{message.index}] {format_timestamp(message.observed_at)}",
        f"From: {sender}",
        message.plaintext,
    ]


def format_account_summary(record: AccountRecord) -> List[str]:
    if isinstance(record, ChannelRecord):
        return [
            f"Owner: {record.owner}",
            f"Channel Name: {record.name}",
            f"Total broadcasts: {record.broadcast_count}",
        ]
    return [
        f"Participant A: {record.participant_a}",
        f"Participant B: {record.participant_b}",
        f"Thread ID: {record.thread_id.hex()}",
        f"Total messages: {record.message_count}",
    ]


def format_scan_summary(kind: str, record: AccountRecord, result: ReconstructionResult) -> str:
    """One-line summary of what the scan recovered against the on-chain counter."""

    plural = LABELS[kind][1].lower()
    parts = [f"Extracted {len(result.messages)} of {record.counter} {plural}"]
    if result.skipped_refs:
        parts.append(f"{result.skipped_refs} transaction(s) skipped")
    if result.failed_refs:
        parts.append(f"{result.failed_refs} transaction(s) failed to load")
    if result.malformed_payloads:
        parts.append(f"{result.malformed_payloads} malformed payload(s)")
    if result.decrypt_failures:
        indices = ", ".join(str(index) for index in result.decrypt_failures)
        parts.append(f"could not decrypt index {indices}")
    if result.duplicate_indices:
        indices = ", ".join(str(index) for index in result.duplicate_indices)
        parts.append(f"duplicate index {indices}")
    return "; ".join(parts)


def format_missing_notice(kind: str, previous: int, current: int) -> str:
    command = "read -t" if kind == "thread" else "read -ch"
    return (
        "Could not find or decrypt new content. "
        f"Run 'solscope {command} <address>' for a full log "
        f"(Old Count: {previous} -> New Count: {current})."
    )
