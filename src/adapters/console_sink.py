"""Terminal output adapter.

Implements the core MessageSinkPort by printing to the console with rich.
Message text is wrapped in Text objects so user content is never parsed as
markup.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.text import Text

from adapters.message_formatting import LABELS, format_message, format_missing_notice
from core.models import MessageRecord

DIVIDER = "=" * 50


class ConsoleMessageSink:
    """Sink adapter that prints live messages as they arrive."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self._console = console or Console()

    def print_message(self, kind: str, message: MessageRecord) -> None:
        header, sender, body = format_message(kind, message)
        self._console.print(Text(header, style="cyan"))
        self._console.print(Text(sender, style="bright_black"))
        self._console.print(Text(f"{body}\n"))

    async def deliver(self, kind: str, message: MessageRecord) -> None:
        received_at = datetime.now().strftime("%H:%M:%S")
        self._console.print(Text(DIVIDER, style="yellow"))
        self._console.print(
            Text(f"New {LABELS[kind][0]} received at {received_at}", style="bold green")
        )
        self.print_message(kind, message)

    async def report_missing(self, kind: str, previous: int, current: int) -> None:
        self._console.print(Text(format_missing_notice(kind, previous, current), style="yellow"))
