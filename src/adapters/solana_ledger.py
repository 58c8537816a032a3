"""Solana ledger adapter.

Implements the core LedgerPort on top of solana-py: HTTP RPC for account and
history reads, and the websocket API for account-change notifications.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.websocket_api import connect
from solders.rpc.responses import AccountNotification
from solders.signature import Signature
from websockets.exceptions import WebSocketException

from adapters.solana_mapper import map_confirmed_transaction, map_signature_info, pubkey_from_identity
from core.errors import (
    AccountNotFound,
    SolscopeError,
    StreamLost,
    SubscriptionSetupFailed,
    TransactionFetchFailed,
)
from core.models import AccountChange, Identity, TransactionContents, TransactionRef

LOGGER = logging.getLogger(__name__)


class SolanaAccountSubscription:
    """An accountSubscribe stream bound to one websocket connection."""

    def __init__(self, websocket, subscription_id: int, address: Identity) -> None:
        self._websocket = websocket
        self.subscription_id = subscription_id
        self.address = address

    def __aiter__(self) -> AsyncIterator[AccountChange]:
        return self._changes()

    async def _changes(self) -> AsyncIterator[AccountChange]:
        try:
            async for batch in self._websocket:
                for message in batch:
                    if not isinstance(message, AccountNotification):
                        continue
                    account = message.result.value
                    slot = message.result.context.slot
                    # A closed account comes back drained and empty.
                    if account.lamports == 0:
                        yield AccountChange(data=b"", slot=slot)
                    else:
                        yield AccountChange(data=bytes(account.data), slot=slot)
        except (OSError, WebSocketException) as exc:
            raise StreamLost(f"Notification stream for {self.address} lost: {exc}") from exc

    async def close(self) -> None:
        try:
            await self._websocket.account_unsubscribe(self.subscription_id)
        except (OSError, WebSocketException) as exc:
            LOGGER.warning("accountUnsubscribe for %s failed: %s", self.subscription_id, exc)
        finally:
            await self._websocket.close()


class SolanaLedger:
    """Thin solana-py wrapper that satisfies the LedgerPort contract."""

    def __init__(self, client: AsyncClient, ws_url: str, commitment: str = "confirmed") -> None:
        self._client = client
        self._ws_url = ws_url
        self._commitment = Commitment(commitment)

    async def get_account_bytes(self, address: Identity) -> bytes:
        try:
            resp = await self._client.get_account_info(
                pubkey_from_identity(address),
                commitment=self._commitment,
                encoding="base64",
            )
        except (SolanaRpcException, RPCException) as exc:
            raise SolscopeError(f"Failed to fetch account {address}: {exc}") from exc
        if resp.value is None:
            raise AccountNotFound(str(address))
        return bytes(resp.value.data)

    async def list_transaction_refs(self, address: Identity, limit: int) -> List[TransactionRef]:
        try:
            resp = await self._client.get_signatures_for_address(
                pubkey_from_identity(address),
                limit=limit,
                commitment=self._commitment,
            )
        except (SolanaRpcException, RPCException) as exc:
            raise SolscopeError(f"Failed to list transactions for {address}: {exc}") from exc
        return [map_signature_info(info) for info in resp.value]

    async def get_transaction(self, signature: str) -> Optional[TransactionContents]:
        try:
            resp = await self._client.get_transaction(
                Signature.from_string(signature),
                encoding="base64",
                commitment=self._commitment,
                max_supported_transaction_version=0,
            )
        except (SolanaRpcException, RPCException) as exc:
            raise TransactionFetchFailed(signature, str(exc)) from exc
        if resp.value is None:
            return None
        return map_confirmed_transaction(signature, resp.value)

    async def subscribe_account_changes(self, address: Identity) -> SolanaAccountSubscription:
        try:
            websocket = await connect(self._ws_url)
        except (OSError, WebSocketException) as exc:
            raise SubscriptionSetupFailed(f"Cannot connect to {self._ws_url}: {exc}") from exc

        # Until the subscription is handed out, nobody else can close the socket.
        established = False
        try:
            try:
                await websocket.account_subscribe(
                    pubkey_from_identity(address),
                    commitment=self._commitment,
                    encoding="base64",
                )
                first = await websocket.recv()
            except (OSError, WebSocketException) as exc:
                raise SubscriptionSetupFailed(f"accountSubscribe failed for {address}: {exc}") from exc

            subscription_id = getattr(first[0], "result", None) if first else None
            if not isinstance(subscription_id, int):
                raise SubscriptionSetupFailed(f"accountSubscribe rejected for {address}: {first!r}")
            established = True
        finally:
            if not established:
                await websocket.close()

        LOGGER.info("Subscribed to %s (subscription %s)", address, subscription_id)
        return SolanaAccountSubscription(websocket, subscription_id, address)

    async def unsubscribe(self, subscription: SolanaAccountSubscription) -> None:
        await subscription.close()

    async def close(self) -> None:
        await self._client.close()
