"""
epoch_distributor/protocol/

Epoch pipeline components: payout arithmetic, price and holder lookups,
the creator fee claim, and the summary log.

The reserve and the epoch runner depend on the blockchain package and are
imported from their own modules:

    from epoch_distributor.protocol.reserve import RewardsReserve
    from epoch_distributor.protocol.epoch import EpochRunner
"""

from .rewards import (
    HolderBalance,
    Payout,
    filter_eligible_holders,
    compute_payouts,
    percent_of,
)
from .messages import Parsed, Malformed, decode_json_body
from .storage import EpochSummary, SummaryStore
from .pricing import JupiterPriceOracle
from .holders import HolderEnumerator, TOKEN_PROGRAM_ID
from .fee_claim import FeeClaimAdapter, ClaimResult

__all__ = [
    # Rewards
    "HolderBalance",
    "Payout",
    "filter_eligible_holders",
    "compute_payouts",
    "percent_of",
    # External payloads
    "Parsed",
    "Malformed",
    "decode_json_body",
    # Summary log
    "EpochSummary",
    "SummaryStore",
    # Collaborators
    "JupiterPriceOracle",
    "HolderEnumerator",
    "TOKEN_PROGRAM_ID",
    "FeeClaimAdapter",
    "ClaimResult",
]
