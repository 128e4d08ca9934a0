"""
epoch_distributor - Creator fee claim and holder reward distribution

Each epoch:
- Claims accrued creator fees once the creator + reserve balance is worth
  more than a USD threshold
- Moves a configured fraction of the claim into a rewards reserve
- Splits the reserve proportionally across eligible token holders
- Pays out in bounded-size batches, confirmed one after another
- Appends an audit summary to a JSONL log

Usage:
    from epoch_distributor import EpochRunner, load_config

    runner = EpochRunner.from_config(load_config())
    outcome = runner.run()

Dashboard Usage:
    from epoch_distributor.monitor import MonitorAPI
    from epoch_distributor.protocol.storage import SummaryStore

    api = MonitorAPI(SummaryStore(path), port=8787)
    trio.run(api.start)
"""

from .config import AppConfig, EligibilityBand, load_config
from .exceptions import (
    DistributorError,
    ConfigurationError,
    OracleError,
    ClaimError,
    SubmissionError,
    ArithmeticOverflowError,
    LedgerError,
    LedgerTimeoutError,
)
from .protocol.rewards import (
    HolderBalance,
    Payout,
    filter_eligible_holders,
    compute_payouts,
)
from .protocol.storage import EpochSummary, SummaryStore
from .blockchain.tx_builder import TransactionBatch, batch_payouts
from .blockchain.reward_distributor import RewardDistributor
from .protocol.epoch import EpochRunner, EpochOutcome, EpochPhase

__version__ = "0.1.0"
__all__ = [
    # Config
    "AppConfig",
    "EligibilityBand",
    "load_config",
    # Errors
    "DistributorError",
    "ConfigurationError",
    "OracleError",
    "ClaimError",
    "SubmissionError",
    "ArithmeticOverflowError",
    "LedgerError",
    "LedgerTimeoutError",
    # Payout arithmetic
    "HolderBalance",
    "Payout",
    "filter_eligible_holders",
    "compute_payouts",
    # Batching and submission
    "TransactionBatch",
    "batch_payouts",
    "RewardDistributor",
    # Orchestration
    "EpochRunner",
    "EpochOutcome",
    "EpochPhase",
    "EpochSummary",
    "SummaryStore",
]
