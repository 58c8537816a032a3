from __future__ import annotations

from client import derive_ws_url, resolve_endpoints, resolve_rpc_url


def test_cluster_monikers() -> None:
    assert resolve_rpc_url("devnet") == "https://api.devnet.solana.com"
    assert resolve_rpc_url("Mainnet") == "https://api.mainnet-beta.solana.com"
    assert resolve_rpc_url("localnet") == "http://localhost:8899"
    assert resolve_rpc_url("https://rpc.example.com") == "https://rpc.example.com"


def test_ws_url_derivation() -> None:
    assert derive_ws_url("https://api.devnet.solana.com") == "wss://api.devnet.solana.com"
    assert derive_ws_url("http://localhost:8899") == "ws://localhost:8900"
    assert derive_ws_url("https://rpc.example.com/key") == "wss://rpc.example.com/key"


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("SOLANA_RPC_URL", "https://rpc.example.com")
    monkeypatch.setenv("SOLANA_WS_URL", "wss://ws.example.com")
    assert resolve_endpoints("devnet") == ("https://rpc.example.com", "wss://ws.example.com")


def test_ws_url_follows_rpc_override(monkeypatch) -> None:
    monkeypatch.setenv("SOLANA_RPC_URL", "http://127.0.0.1:8899")
    monkeypatch.delenv("SOLANA_WS_URL", raising=False)
    assert resolve_endpoints("devnet") == ("http://127.0.0.1:8899", "ws://127.0.0.1:8900")
