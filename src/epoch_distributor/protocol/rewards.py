"""
epoch_distributor/protocol/rewards.py

Holder eligibility and proportional payout calculation.

All arithmetic here is exact integer arithmetic on Python ints:
- Payouts are floor(reserve * holder_amount / total_eligible), multiplied
  before dividing so no precision is lost on large token supplies.
- The floor-rounding residue is not redistributed. It stays in the reserve
  and is included in the next epoch's balance read.

Usage:
    from epoch_distributor.protocol.rewards import (
        filter_eligible_holders,
        compute_payouts,
    )

    eligible = filter_eligible_holders(holders, config.eligibility_band)
    payouts = compute_payouts(eligible, reserve_balance)
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Sequence

from solders.pubkey import Pubkey

from ..config import EligibilityBand

logger = logging.getLogger("epoch_distributor.protocol.rewards")


# Fixed-point scale for the distribution fraction (parts per million)
FRACTION_SCALE = 1_000_000


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class HolderBalance:
    """Aggregated token balance of one owner."""
    owner: Pubkey
    amount: int  # Token base units, > 0

    def to_dict(self) -> dict:
        return {"owner": str(self.owner), "amount": str(self.amount)}


@dataclass(frozen=True)
class Payout:
    """Native-token amount owed to one owner this epoch."""
    owner: Pubkey
    amount: int  # Lamports, > 0

    def to_dict(self) -> dict:
        return {"owner": str(self.owner), "amount": str(self.amount)}


# ============================================================================
# ELIGIBILITY
# ============================================================================

def filter_eligible_holders(
    holders: Sequence[HolderBalance],
    band: EligibilityBand,
) -> List[HolderBalance]:
    """
    Select holders whose balance falls within the band.

    Both bounds are inclusive. A band without max_balance has no upper
    bound. Input order is preserved.

    Args:
        holders: Holder balances from the enumerator
        band: Inclusive min/max balance band

    Returns:
        Eligible holders, in input order
    """
    eligible = []
    for holder in holders:
        if holder.amount < band.min_balance:
            continue
        if band.max_balance is not None and holder.amount > band.max_balance:
            continue
        eligible.append(holder)
    return eligible


# ============================================================================
# PAYOUTS
# ============================================================================

def compute_payouts(
    eligible_holders: Sequence[HolderBalance],
    reserve_balance: int,
) -> List[Payout]:
    """
    Split the reserve balance proportionally to holder amounts.

    Args:
        eligible_holders: Holders to pay, in payout order
        reserve_balance: Lamports available for distribution

    Returns:
        Non-zero payouts in holder order. sum(amounts) <= reserve_balance.
    """
    if reserve_balance <= 0:
        return []

    total_eligible_tokens = sum(holder.amount for holder in eligible_holders)
    if total_eligible_tokens == 0:
        return []

    payouts = []
    for holder in eligible_holders:
        amount = reserve_balance * holder.amount // total_eligible_tokens
        if amount > 0:
            payouts.append(Payout(owner=holder.owner, amount=amount))

    logger.debug(
        f"Computed {len(payouts)} payouts from {len(eligible_holders)} holders: "
        f"reserve={reserve_balance} distributed={sum(p.amount for p in payouts)}"
    )
    return payouts


def percent_of(value: int, fraction: Decimal) -> int:
    """
    Take a fraction of an integer amount with fixed-point scaling.

    The fraction is rounded half-up to parts per million, then applied as
    value * scaled // 1_000_000.

    Args:
        value: Amount in lamports
        fraction: Fraction between 0 and 1

    Returns:
        Scaled amount (0 when fraction <= 0, value when fraction >= 1)
    """
    if fraction <= 0:
        return 0
    if fraction >= 1:
        return value
    scaled = int((Decimal(fraction) * FRACTION_SCALE).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return value * scaled // FRACTION_SCALE
