"""Live-tail change tracking (core domain).

A tracker owns one subscription and the last counter it observed. It is
integration-agnostic: the ledger, reconstructor and sink are all injected.

States: IDLE -> SUBSCRIBED -> (per notification) DIFFING -> SUBSCRIBED,
terminal UNSUBSCRIBED (stop) or FAILED (setup error).
"""

from __future__ import annotations

import enum
import logging
from typing import List, Optional

from core.errors import AccountNotFound, MalformedAccount, SolscopeError, SubscriptionSetupFailed
from core.layout import decode_account, read_counter
from core.models import AccountChange, AccountRecord, Identity, MessageRecord
from core.ports import AccountSubscription, LedgerPort, MessageSinkPort
from core.reconstructor import HistoryReconstructor

LOGGER = logging.getLogger(__name__)


class TrackerState(enum.Enum):
    IDLE = "idle"
    SUBSCRIBED = "subscribed"
    DIFFING = "diffing"
    UNSUBSCRIBED = "unsubscribed"
    FAILED = "failed"


class ChangeTracker:
    """Watches one account and delivers messages appended after start()."""

    def __init__(
        self,
        ledger: LedgerPort,
        reconstructor: HistoryReconstructor,
        sink: MessageSinkPort,
        address: Identity,
        kind: str,
        secret: str,
    ) -> None:
        self._ledger = ledger
        self._reconstructor = reconstructor
        self._sink = sink
        self._address = address
        self._kind = kind
        self._secret = secret
        self._subscription: Optional[AccountSubscription] = None
        self._previous = 0
        self.state = TrackerState.IDLE
        self.account_closed = False

    @property
    def previous_count(self) -> int:
        return self._previous

    @property
    def subscription_id(self) -> Optional[int]:
        if self._subscription is None:
            return None
        return self._subscription.subscription_id

    async def start(self) -> AccountRecord:
        """Read the initial counter and open the subscription."""

        if self.state is not TrackerState.IDLE:
            raise RuntimeError(f"Tracker cannot start from state {self.state.value}")

        try:
            data = await self._ledger.get_account_bytes(self._address)
            record = decode_account(data, self._kind)
        except (AccountNotFound, MalformedAccount) as exc:
            self.state = TrackerState.FAILED
            raise SubscriptionSetupFailed(str(exc)) from exc

        self._previous = record.counter
        try:
            self._subscription = await self._ledger.subscribe_account_changes(self._address)
        except SubscriptionSetupFailed:
            self.state = TrackerState.FAILED
            raise

        self.state = TrackerState.SUBSCRIBED
        LOGGER.info(
            "Tracking %s %s from count %s (subscription %s)",
            self._kind,
            self._address,
            self._previous,
            self._subscription.subscription_id,
        )
        return record

    async def run(self) -> None:
        """Consume notifications one at a time until the stream ends or the account closes."""

        if self.state is not TrackerState.SUBSCRIBED or self._subscription is None:
            raise RuntimeError(f"Tracker cannot run from state {self.state.value}")

        async for change in self._subscription:
            if not change.data:
                LOGGER.info("%s %s was closed at slot %s", self._kind, self._address, change.slot)
                self.account_closed = True
                return
            await self.handle_change(change)

    async def handle_change(self, change: AccountChange) -> List[MessageRecord]:
        """Diff the counter in one notification and deliver any new messages."""

        self.state = TrackerState.DIFFING
        try:
            try:
                current = read_counter(change.data, self._kind)
            except MalformedAccount as exc:
                LOGGER.warning("Ignoring undecodable update at slot %s: %s", change.slot, exc)
                return []

            previous = self._previous
            if current <= previous:
                return []

            LOGGER.info("Count advanced %s -> %s at slot %s", previous, current, change.slot)
            try:
                result = await self._reconstructor.reconstruct(
                    self._address, self._kind, self._secret, min_index=previous
                )
                messages = [message for message in result.messages if message.index < current]
            except SolscopeError:
                LOGGER.exception("Reconstruction failed for range [%s, %s)", previous, current)
                messages = []

            self._previous = current
            for message in messages:
                await self._sink.deliver(self._kind, message)
            if not messages:
                await self._sink.report_missing(self._kind, previous, current)
            return messages
        finally:
            if self.state is TrackerState.DIFFING:
                self.state = TrackerState.SUBSCRIBED

    async def stop(self) -> None:
        """Release the subscription. Safe to call on every exit path, more than once."""

        subscription, self._subscription = self._subscription, None
        try:
            if subscription is not None:
                await self._ledger.unsubscribe(subscription)
                LOGGER.info("Subscription %s removed", subscription.subscription_id)
        finally:
            if self.state is not TrackerState.FAILED:
                self.state = TrackerState.UNSUBSCRIBED
