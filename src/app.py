"""Application entry point for the solscope reader."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from logging.handlers import RotatingFileHandler
from typing import Optional, Tuple

from art import tprint
from dotenv import load_dotenv
from rich.console import Console
from rich.text import Text

import settings
from adapters.addresses import derive_channel_address, derive_subscription_address, derive_thread_address
from adapters.aes_cipher import AesCbcCipher
from adapters.console_sink import ConsoleMessageSink
from adapters.message_formatting import LABELS, format_account_summary, format_scan_summary
from client import build_ledger
from core.config import ScanConfig
from core.errors import SolscopeError
from core.layout import decode_account
from core.models import Identity
from core.reconstructor import HistoryReconstructor
from core.tracker import ChangeTracker

NAME = "SOLSCOPE"
FONT = "tarty-1"

SECRET_ENV = "SOLSCOPE_SHARED_SECRET"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict, extra: list[str]) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = [value for value in extra if value]
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging(extra_secrets: Optional[list[str]] = None) -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config, extra_secrets or [])
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/solscope.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _identity_arg(value: str) -> Identity:
    try:
        return Identity.from_base58(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _target(args: argparse.Namespace) -> Tuple[Identity, str]:
    if args.thread is not None:
        return args.thread, "thread"
    return args.channel, "channel"


def _resolve_secret(args: argparse.Namespace, kind: str) -> Tuple[str, bool]:
    """Return (secret, explicitly_provided)."""

    if args.key:
        return args.key, True
    load_dotenv()
    env_secret = os.getenv(SECRET_ENV)
    if env_secret:
        return env_secret, True
    if kind == "thread":
        return settings.DEFAULT_THREAD_SECRET, False
    return settings.DEFAULT_CHANNEL_SECRET, False


def _scan_config() -> ScanConfig:
    return ScanConfig(
        signature_limit=settings.SIGNATURE_LIMIT,
        fetch_concurrency=settings.FETCH_CONCURRENCY,
        skip_failed_transactions=settings.SKIP_FAILED_TRANSACTIONS,
    )


def _program() -> Identity:
    return Identity.from_base58(settings.PROGRAM_ID)


async def _read(args: argparse.Namespace, console: Console) -> None:
    address, kind = _target(args)
    secret, _ = _resolve_secret(args, kind)
    plural = LABELS[kind][1]

    console.print(Text(f"Read {plural} ({kind})", style="bold cyan"))
    console.print(Text(f"  Account: {address}", style="bright_black"))
    console.print(Text(f"  Cluster: {args.cluster}\n", style="bright_black"))

    ledger = build_ledger(args.cluster, settings.COMMITMENT)
    try:
        data = await ledger.get_account_bytes(address)
        record = decode_account(data, kind)
        reconstructor = HistoryReconstructor(ledger, AesCbcCipher(), _program(), _scan_config())
        result = await reconstructor.reconstruct(address, kind, secret, min_index=0)
    finally:
        await ledger.close()

    for line in format_account_summary(record):
        console.print(Text(f"  {line}", style="bright_black"))
    console.print(Text(format_scan_summary(kind, record, result), style="green"))
    console.print(Text(f"\n{plural}:\n", style="bold"))

    sink = ConsoleMessageSink(console)
    for message in result.messages:
        sink.print_message(kind, message)


async def _listen(args: argparse.Namespace, console: Console) -> None:
    address, kind = _target(args)
    secret, provided = _resolve_secret(args, kind)
    if not provided:
        console.print(
            Text(
                "Warning: no encryption key (--key) provided. Using the default key; "
                "messages sent with another key will not be displayed.\n",
                style="yellow",
            )
        )

    console.print(Text(f"Listening for {LABELS[kind][0]} updates...", style="bold cyan"))
    console.print(Text(f"  Target: {address}", style="bright_black"))
    console.print(Text(f"  Cluster: {args.cluster}\n", style="bright_black"))

    ledger = build_ledger(args.cluster, settings.COMMITMENT)
    reconstructor = HistoryReconstructor(ledger, AesCbcCipher(), _program(), _scan_config())
    tracker = ChangeTracker(
        ledger,
        reconstructor,
        ConsoleMessageSink(console),
        address,
        kind,
        secret,
    )

    # Explicit lifecycle management: the subscription is released on every
    # exit path, including Ctrl+C and fatal errors.
    try:
        record = await tracker.start()
        console.print(Text(f"Initial count: {record.counter}", style="green"))
        console.print(Text(f"Listening started. Subscription ID: {tracker.subscription_id}", style="cyan"))
        console.print(Text("Press Ctrl+C to stop listening...\n", style="bright_black"))
        await tracker.run()
        if tracker.account_closed:
            console.print(Text("Account was closed. Nothing more to listen for.", style="yellow"))
    except asyncio.CancelledError:
        console.print(Text("\nStopping subscription...", style="yellow"))
    finally:
        await tracker.stop()
        await ledger.close()
    console.print(Text("Subscription removed. Exiting.", style="yellow"))


async def _with_interrupts(command, args: argparse.Namespace, console: Console) -> None:
    """Run a command, turning SIGINT/SIGTERM into task cancellation."""

    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    installed = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, task.cancel)
            installed.append(signum)
        except (NotImplementedError, RuntimeError):
            # Platforms without loop signal support fall back to KeyboardInterrupt.
            pass
    try:
        await command(args, console)
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


def _run(command, args: argparse.Namespace) -> int:
    _print_banner()
    _configure_logging([args.key] if args.key else None)
    console = Console()
    try:
        asyncio.run(_with_interrupts(command, args, console))
    except SolscopeError as exc:
        console.print(Text(f"Error: {exc}", style="bold red"))
        return 1
    except (asyncio.CancelledError, KeyboardInterrupt):
        return 130
    return 0


def _derive(args: argparse.Namespace) -> int:
    _configure_logging()
    program = args.program or _program()
    if args.command == "derive-thread":
        try:
            thread_id = bytes.fromhex(args.thread_id)
            address = derive_thread_address(program, args.participant_a, args.participant_b, thread_id)
        except ValueError as exc:
            print(f"Error: {exc}")
            return 1
    elif args.command == "derive-channel":
        try:
            address = derive_channel_address(program, args.owner, args.name)
        except ValueError as exc:
            print(f"Error: {exc}")
            return 1
    else:
        address = derive_subscription_address(program, args.channel, args.subscriber)
    print(address)
    return 0


def _add_target_args(parser: argparse.ArgumentParser) -> None:
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("-t", "--thread", type=_identity_arg, help="Thread PDA address")
    target.add_argument("-ch", "--channel", type=_identity_arg, help="Channel PDA address")
    parser.add_argument("-k", "--key", help="Decryption key (shared secret)")
    parser.add_argument("-c", "--cluster", default=settings.CLUSTER, help="Cluster name or RPC URL")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="solscope")
    subparsers = parser.add_subparsers(dest="command")

    read_parser = subparsers.add_parser("read", help="Read and decrypt a thread or channel history")
    _add_target_args(read_parser)

    listen_parser = subparsers.add_parser("listen", help="Listen for new messages on a thread or channel")
    _add_target_args(listen_parser)

    thread_parser = subparsers.add_parser("derive-thread", help="Derive a thread PDA")
    thread_parser.add_argument("-a", "--participant-a", type=_identity_arg, required=True)
    thread_parser.add_argument("-b", "--participant-b", type=_identity_arg, required=True)
    thread_parser.add_argument("--thread-id", required=True, help="32-byte thread id as hex")

    channel_parser = subparsers.add_parser("derive-channel", help="Derive a channel PDA")
    channel_parser.add_argument("-o", "--owner", type=_identity_arg, required=True)
    channel_parser.add_argument("-n", "--name", required=True, help="Channel name (max 32 bytes)")

    subscription_parser = subparsers.add_parser("derive-subscription", help="Derive a subscription PDA")
    subscription_parser.add_argument("-ch", "--channel", type=_identity_arg, required=True)
    subscription_parser.add_argument("-s", "--subscriber", type=_identity_arg, required=True)

    for derive_parser in (thread_parser, channel_parser, subscription_parser):
        derive_parser.add_argument("-p", "--program", type=_identity_arg, help="Program id override")

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "read":
        raise SystemExit(_run(_read, args))
    if args.command == "listen":
        raise SystemExit(_run(_listen, args))
    if args.command in {"derive-thread", "derive-channel", "derive-subscription"}:
        raise SystemExit(_derive(args))
    parser.print_help()


if __name__ == "__main__":
    main()
