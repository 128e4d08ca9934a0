"""
Tests for epoch_distributor/protocol/rewards.py

Tests eligibility filtering, proportional payouts and fixed-point fractions.
"""

import random
from decimal import Decimal

import pytest
from solders.pubkey import Pubkey

from epoch_distributor.config import EligibilityBand
from epoch_distributor.protocol.rewards import (
    FRACTION_SCALE,
    HolderBalance,
    Payout,
    compute_payouts,
    filter_eligible_holders,
    percent_of,
)


def make_holders(*amounts):
    return [HolderBalance(owner=Pubkey.new_unique(), amount=a) for a in amounts]


# ============================================================================
# ELIGIBILITY TESTS
# ============================================================================

class TestFilterEligibleHolders:
    """Tests for filter_eligible_holders."""

    def test_min_is_inclusive(self):
        holders = make_holders(99, 100, 101)
        eligible = filter_eligible_holders(holders, EligibilityBand(min_balance=100))
        assert [h.amount for h in eligible] == [100, 101]

    def test_max_is_inclusive(self):
        holders = make_holders(100, 500, 501)
        band = EligibilityBand(min_balance=0, max_balance=500)
        eligible = filter_eligible_holders(holders, band)
        assert [h.amount for h in eligible] == [100, 500]

    def test_no_max_means_unbounded(self):
        holders = make_holders(1, 10**30)
        eligible = filter_eligible_holders(holders, EligibilityBand(min_balance=1))
        assert len(eligible) == 2

    def test_preserves_order(self):
        holders = make_holders(300, 100, 200)
        eligible = filter_eligible_holders(holders, EligibilityBand(min_balance=0))
        assert eligible == holders

    def test_empty_input(self):
        assert filter_eligible_holders([], EligibilityBand(min_balance=0)) == []

    def test_does_not_mutate_input(self):
        holders = make_holders(1, 1000)
        snapshot = list(holders)
        filter_eligible_holders(holders, EligibilityBand(min_balance=500))
        assert holders == snapshot


# ============================================================================
# PAYOUT TESTS
# ============================================================================

class TestComputePayouts:
    """Tests for compute_payouts."""

    def test_three_holder_scenario(self):
        """Residue from floor rounding stays undistributed."""
        holders = make_holders(1_000_000, 2_000_000, 3_000_000)
        payouts = compute_payouts(holders, 1_000_000_001)

        assert [p.amount for p in payouts] == [166_666_666, 333_333_333, 500_000_000]
        assert [p.owner for p in payouts] == [h.owner for h in holders]
        assert sum(p.amount for p in payouts) == 999_999_999

    def test_equal_split(self):
        holders = make_holders(1_000_000, 1_000_000)
        payouts = compute_payouts(holders, 1_000_000_000)
        assert [p.amount for p in payouts] == [500_000_000, 500_000_000]

    def test_zero_reserve_is_noop(self):
        assert compute_payouts(make_holders(10, 20), 0) == []

    def test_negative_reserve_is_noop(self):
        assert compute_payouts(make_holders(10, 20), -5) == []

    def test_zero_total_is_noop(self):
        holders = [HolderBalance(owner=Pubkey.new_unique(), amount=0)]
        assert compute_payouts(holders, 1_000_000) == []

    def test_empty_holders(self):
        assert compute_payouts([], 1_000_000) == []

    def test_zero_payouts_dropped(self):
        """A tiny holder whose share floors to zero gets no payout."""
        holders = make_holders(1, 10**12)
        payouts = compute_payouts(holders, 1_000)
        assert len(payouts) == 1
        assert payouts[0].owner == holders[1].owner

    def test_large_values_exact(self):
        """Multiply-before-divide stays exact beyond 64-bit products."""
        holders = make_holders(2**63, 2**63 - 1)
        reserve = 2**62
        payouts = compute_payouts(holders, reserve)
        total = 2**64 - 1
        assert payouts[0].amount == reserve * 2**63 // total
        assert payouts[1].amount == reserve * (2**63 - 1) // total

    def test_idempotent(self):
        holders = make_holders(5, 7, 11, 13)
        assert compute_payouts(holders, 123_456_789) == compute_payouts(holders, 123_456_789)

    def test_payouts_are_positive(self):
        payouts = compute_payouts(make_holders(3, 5, 8), 1000)
        assert all(isinstance(p, Payout) and p.amount > 0 for p in payouts)


class TestPayoutProperties:
    """Randomized checks of conservation and proportionality."""

    @pytest.mark.parametrize("seed", range(20))
    def test_conservation(self, seed):
        rng = random.Random(seed)
        holders = make_holders(*[rng.randint(1, 10**12) for _ in range(rng.randint(1, 40))])
        reserve = rng.randint(0, 10**15)

        payouts = compute_payouts(holders, reserve)

        assert sum(p.amount for p in payouts) <= reserve
        # Residue is below one lamport per holder
        if reserve > 0:
            assert reserve - sum(p.amount for p in payouts) < len(holders)

    @pytest.mark.parametrize("seed", range(20))
    def test_proportionality(self, seed):
        rng = random.Random(seed)
        amounts = [rng.randint(1, 10**9) for _ in range(rng.randint(2, 30))]
        holders = make_holders(*amounts)
        reserve = rng.randint(1, 10**13)

        by_owner = {p.owner: p.amount for p in compute_payouts(holders, reserve)}
        for a in holders:
            for b in holders:
                if a.amount >= b.amount:
                    assert by_owner.get(a.owner, 0) >= by_owner.get(b.owner, 0)


# ============================================================================
# FIXED-POINT FRACTION TESTS
# ============================================================================

class TestPercentOf:
    """Tests for percent_of."""

    def test_half(self):
        assert percent_of(1_000, Decimal("0.5")) == 500

    def test_zero_and_negative_fraction(self):
        assert percent_of(1_000, Decimal(0)) == 0
        assert percent_of(1_000, Decimal("-0.1")) == 0

    def test_full_and_above(self):
        assert percent_of(1_000, Decimal(1)) == 1_000
        assert percent_of(1_000, Decimal("1.5")) == 1_000

    def test_rounds_fraction_half_up(self):
        """0.1234565 scales to 123456.5 parts per million, rounded to 123457."""
        assert percent_of(FRACTION_SCALE, Decimal("0.1234565")) == 123_457

    def test_floors_result(self):
        assert percent_of(3, Decimal("0.5")) == 1

    def test_zero_value(self):
        assert percent_of(0, Decimal("0.7")) == 0
