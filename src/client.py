"""Solana RPC client factory for solscope.

We explicitly manage the client's lifecycle (build here, close in the
command) so it is obvious when connections are opened and when they end.
This avoids implicit context-manager behavior for a long-running listener.
"""

from __future__ import annotations

import logging
import os
from typing import Tuple
from urllib.parse import urlsplit, urlunsplit

from dotenv import load_dotenv
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment

from adapters.solana_ledger import SolanaLedger

CLUSTER_URLS = {
    "mainnet": "https://api.mainnet-beta.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "localhost": "http://localhost:8899",
    "localnet": "http://localhost:8899",
}

# solana-test-validator serves pubsub one port above RPC.
LOCAL_RPC_PORT = 8899
LOCAL_WS_PORT = 8900


def resolve_rpc_url(cluster: str) -> str:
    """Return the RPC URL for a cluster moniker; anything else is used as a URL."""

    return CLUSTER_URLS.get(cluster.strip().lower(), cluster.strip())


def derive_ws_url(rpc_url: str) -> str:
    parts = urlsplit(rpc_url)
    scheme = {"https": "wss", "http": "ws"}.get(parts.scheme, parts.scheme)
    netloc = parts.netloc
    if parts.port == LOCAL_RPC_PORT:
        netloc = netloc.replace(f":{LOCAL_RPC_PORT}", f":{LOCAL_WS_PORT}")
    return urlunsplit((scheme, netloc, parts.path, parts.query, parts.fragment))


def resolve_endpoints(cluster: str) -> Tuple[str, str]:
    """Return (rpc_url, ws_url), honoring SOLANA_RPC_URL / SOLANA_WS_URL overrides."""

    load_dotenv()

    rpc_url = os.getenv("SOLANA_RPC_URL") or resolve_rpc_url(cluster)
    ws_url = os.getenv("SOLANA_WS_URL") or derive_ws_url(rpc_url)
    return rpc_url, ws_url


def build_ledger(cluster: str, commitment: str) -> SolanaLedger:
    """Create the ledger adapter for a cluster."""

    rpc_url, ws_url = resolve_endpoints(cluster)

    # Fail fast on an empty endpoint to avoid an ambiguous connection error later.
    if not rpc_url:
        raise RuntimeError("Missing RPC endpoint: pass --cluster or set SOLANA_RPC_URL")

    logging.getLogger(__name__).info("Initializing Solana client for %s", rpc_url)

    client = AsyncClient(rpc_url, commitment=Commitment(commitment))
    return SolanaLedger(client, ws_url, commitment=commitment)
