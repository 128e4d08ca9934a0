"""
epoch_distributor/metrics.py

Prometheus metrics for epoch_distributor.

Metrics are derived entirely from the summary log, so the dashboard
process can expose them without talking to the ledger.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config import DEFAULT_MONITOR_LIMIT
from .protocol.storage import STATUS_PARTIAL, EpochSummary, SummaryStore

logger = logging.getLogger("epoch_distributor.metrics")


def parse_timestamp(value: str) -> Optional[float]:
    """ISO-8601 timestamp to Unix seconds, or None if unparseable."""
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


class EpochMetricsCollector:
    """
    Prometheus metrics collector for recorded epochs.

    Usage:
        from epoch_distributor.metrics import EpochMetricsCollector
        from epoch_distributor.protocol.storage import SummaryStore

        metrics = EpochMetricsCollector(SummaryStore(path))
        prometheus_output = metrics.collect()
    """

    # Metric definitions
    METRICS = {
        "epoch_distributor_epochs_recorded": {
            "type": "gauge",
            "help": "Epoch summaries in the metrics window",
        },
        "epoch_distributor_partial_epochs": {
            "type": "gauge",
            "help": "Epochs in the window whose submission stopped part way",
        },
        "epoch_distributor_claimed_lamports_total": {
            "type": "counter",
            "help": "Creator fees claimed across the window, in lamports",
        },
        "epoch_distributor_distributed_lamports_total": {
            "type": "counter",
            "help": "Lamports moved into the reserve across the window",
        },
        "epoch_distributor_transactions_total": {
            "type": "counter",
            "help": "Confirmed distribution transactions across the window",
        },
        "epoch_distributor_last_epoch_timestamp_seconds": {
            "type": "gauge",
            "help": "Unix time of the most recent epoch summary",
        },
        "epoch_distributor_last_price_usd": {
            "type": "gauge",
            "help": "USD price used by the most recent epoch",
        },
        "epoch_distributor_last_claimed_lamports": {
            "type": "gauge",
            "help": "Lamports claimed by the most recent epoch",
        },
        "epoch_distributor_last_reserve_balance_lamports": {
            "type": "gauge",
            "help": "Reserve balance distributed by the most recent epoch",
        },
        "epoch_distributor_last_eligible_holders": {
            "type": "gauge",
            "help": "Eligible holders paid by the most recent epoch",
        },
        "epoch_distributor_last_epoch_info": {
            "type": "gauge",
            "help": "Most recent epoch (epoch_id, status as labels)",
        },
    }

    def __init__(self, store: SummaryStore, limit: int = DEFAULT_MONITOR_LIMIT):
        """
        Initialize metrics collector.

        Args:
            store: Summary log to read from
            limit: Number of recent epochs the window covers
        """
        self.store = store
        self.limit = limit

    def collect(self) -> str:
        """
        Render metrics in Prometheus text format.

        Returns:
            Prometheus-formatted metrics string

        Raises:
            OSError: If the summary log cannot be read
        """
        summaries = self.store.read_recent(self.limit)
        lines: List[str] = []

        def add_metric(name: str, value: Any, labels: Dict[str, str] = None):
            metric_def = self.METRICS.get(name, {})
            lines.append(f"# HELP {name} {metric_def.get('help', '')}")
            lines.append(f"# TYPE {name} {metric_def.get('type', 'gauge')}")
            if labels:
                label_str = ",".join(f'{k}="{v}"' for k, v in labels.items())
                lines.append(f"{name}{{{label_str}}} {value}")
            else:
                lines.append(f"{name} {value}")

        add_metric("epoch_distributor_epochs_recorded", len(summaries))
        add_metric(
            "epoch_distributor_partial_epochs",
            sum(1 for s in summaries if s.status == STATUS_PARTIAL),
        )
        add_metric(
            "epoch_distributor_claimed_lamports_total",
            sum(s.claimed_amount for s in summaries),
        )
        add_metric(
            "epoch_distributor_distributed_lamports_total",
            sum(s.distribution_amount for s in summaries),
        )
        add_metric(
            "epoch_distributor_transactions_total",
            sum(len(s.transaction_signatures) for s in summaries),
        )

        if summaries:
            self._add_latest(summaries[0], add_metric)

        return "\n".join(lines) + "\n"

    def _add_latest(self, latest: EpochSummary, add_metric) -> None:
        timestamp = parse_timestamp(latest.timestamp)
        if timestamp is not None:
            add_metric("epoch_distributor_last_epoch_timestamp_seconds", timestamp)
        add_metric("epoch_distributor_last_price_usd", latest.price_at_epoch)
        add_metric("epoch_distributor_last_claimed_lamports", latest.claimed_amount)
        add_metric(
            "epoch_distributor_last_reserve_balance_lamports", latest.reserve_balance_after
        )
        add_metric("epoch_distributor_last_eligible_holders", latest.eligible_holder_count)
        add_metric(
            "epoch_distributor_last_epoch_info",
            1,
            labels={"epoch_id": latest.epoch_id, "status": latest.status},
        )

    def get_stats(self) -> Dict[str, Any]:
        """
        Get metrics as a dictionary (served at /stats).

        Returns:
            Dictionary of window totals and the latest epoch
        """
        summaries = self.store.read_recent(self.limit)
        return {
            "epochs_recorded": len(summaries),
            "partial_epochs": sum(1 for s in summaries if s.status == STATUS_PARTIAL),
            "claimed_amount_total": str(sum(s.claimed_amount for s in summaries)),
            "distribution_amount_total": str(sum(s.distribution_amount for s in summaries)),
            "transactions_total": sum(len(s.transaction_signatures) for s in summaries),
            "latest": summaries[0].to_dict() if summaries else None,
        }
