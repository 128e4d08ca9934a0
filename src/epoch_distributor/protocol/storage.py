"""
epoch_distributor/protocol/storage.py

Append-only epoch summary log.

One JSON object per line (JSONL). Amounts and the price are written as
decimal strings so readers never lose precision. The file is only ever
appended to; readers tolerate partial or corrupt lines by skipping them.

Used by:
- EpochRunner - one record per completed (or partially submitted) epoch
- MonitorAPI - dashboard and metrics endpoints
"""

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import DEFAULT_SUMMARY_PATH

logger = logging.getLogger("epoch_distributor.protocol.storage")


# ============================================================================
# CONSTANTS
# ============================================================================

STATUS_COMPLETED = "completed"
STATUS_PARTIAL = "partial"


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class EpochSummary:
    """Audit record of one epoch run."""
    epoch_id: str
    timestamp: str                  # ISO-8601 UTC
    price_at_epoch: Decimal         # USD per native token
    claimed_amount: int             # lamports
    distribution_amount: int        # lamports moved creator -> reserve
    reserve_balance_after: int      # reserve balance after top-up, before payouts
    eligible_holder_count: int
    transaction_signatures: List[str] = field(default_factory=list)
    status: str = STATUS_COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "epoch_id": self.epoch_id,
            "timestamp": self.timestamp,
            "price_at_epoch": str(self.price_at_epoch),
            "claimed_amount": str(self.claimed_amount),
            "distribution_amount": str(self.distribution_amount),
            "reserve_balance_after": str(self.reserve_balance_after),
            "eligible_holder_count": self.eligible_holder_count,
            "transaction_signatures": list(self.transaction_signatures),
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EpochSummary":
        """
        Rebuild a summary from its JSON form.

        Raises:
            KeyError, TypeError, ValueError: If a field is missing or malformed
        """
        signatures = data["transaction_signatures"]
        if not isinstance(signatures, list):
            raise TypeError("transaction_signatures must be a list")
        return cls(
            epoch_id=str(data["epoch_id"]),
            timestamp=str(data["timestamp"]),
            price_at_epoch=Decimal(str(data["price_at_epoch"])),
            claimed_amount=int(data["claimed_amount"]),
            distribution_amount=int(data["distribution_amount"]),
            reserve_balance_after=int(data["reserve_balance_after"]),
            eligible_holder_count=int(data["eligible_holder_count"]),
            transaction_signatures=[str(s) for s in signatures],
            status=data.get("status", STATUS_COMPLETED),
        )


# ============================================================================
# SUMMARY STORE
# ============================================================================

class SummaryStore:
    """
    JSONL-backed summary log.

    Example:
        store = SummaryStore(Path("data/epochs.jsonl"))
        store.append(summary)
        latest = store.read_recent(10)
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else DEFAULT_SUMMARY_PATH

    def append(self, summary: EpochSummary) -> None:
        """Append one record, creating the parent directory if needed."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(summary.to_dict(), separators=(",", ":"))
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
        logger.info(
            f"Persisted epoch summary: epoch_id={summary.epoch_id} status={summary.status} "
            f"path={self.path}"
        )

    def read_recent(self, limit: int) -> List[EpochSummary]:
        """
        Read the most recent records, newest first.

        Malformed lines are skipped. A missing file yields an empty list.

        Args:
            limit: Maximum number of records to return

        Returns:
            Up to limit summaries, newest first
        """
        if limit <= 0:
            return []

        try:
            with open(self.path, "rb") as f:
                lines = f.read().splitlines()
        except FileNotFoundError:
            return []

        summaries: List[EpochSummary] = []
        for line in reversed(lines):
            if not line.strip():
                continue
            try:
                summaries.append(EpochSummary.from_dict(json.loads(line.decode("utf-8"))))
            except (KeyError, TypeError, ValueError, ArithmeticError) as e:
                logger.warning(f"Skipping malformed summary line in {self.path}: {e}")
                continue
            if len(summaries) >= limit:
                break
        return summaries
