"""
epoch_distributor/ledger - JSON-RPC client for the ledger network.

Provides balance reads, freshness tokens, transaction broadcast and
confirmation, and program-account scans for the epoch pipeline.
"""

from .client import LedgerClient, FreshnessToken, commitment_reached
from .connection import RpcConnection

__all__ = [
    "LedgerClient",
    "FreshnessToken",
    "RpcConnection",
    "commitment_reached",
]
