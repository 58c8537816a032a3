"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass

# getSignaturesForAddress never returns more than this per request.
MAX_SIGNATURE_LIMIT = 1000


@dataclass(frozen=True)
class ScanConfig:
    """History scan settings for the reconstructor."""

    signature_limit: int = MAX_SIGNATURE_LIMIT
    fetch_concurrency: int = 4
    skip_failed_transactions: bool = True

    def effective_limit(self) -> int:
        return max(1, min(self.signature_limit, MAX_SIGNATURE_LIMIT))
