"""Static configuration for solscope.

All user-editable settings (cluster, program id, scan limits, logging) live
in a single JSON file for quick edits without touching Python. Secrets stay
in the environment (.env).
"""

import json
import os

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Settings are loaded from config.json so users can switch clusters or tune
# the history scan without editing code.
CONFIG_PATH = os.environ.get("SOLSCOPE_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Default cluster when --cluster is not given: a moniker or an RPC URL.
CLUSTER = _CONFIG.get("cluster", "devnet")
COMMITMENT = _CONFIG.get("commitment", "confirmed")

# Address of the deployed messaging program.
PROGRAM_ID = _CONFIG.get("program_id", "9tN5NBvynubfJwQWDqrSoHEE3Xy2MVj3BmHdLu13wCcS")

# History scan controls.
# - SIGNATURE_LIMIT: newest-first references to scan (RPC maximum is 1000)
# - FETCH_CONCURRENCY: transactions fetched in parallel
# - SKIP_FAILED_TRANSACTIONS: ignore history entries that failed on-chain
_scan = _CONFIG.get("scan", {})
SIGNATURE_LIMIT = int(_scan.get("signature_limit", 1000))
FETCH_CONCURRENCY = int(_scan.get("fetch_concurrency", 4))
SKIP_FAILED_TRANSACTIONS = bool(_scan.get("skip_failed_transactions", True))

# Fallback shared secrets used by the original clients when no key is given.
_secrets = _CONFIG.get("default_secrets", {})
DEFAULT_THREAD_SECRET = _secrets.get("thread", "default-secret-key")
DEFAULT_CHANNEL_SECRET = _secrets.get("channel", "default-channel-key")

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
